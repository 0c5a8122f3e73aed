"""Error taxonomy shared by the assistant, the stores and the scheduler."""

from __future__ import annotations

from typing import Optional


class ChatMateError(Exception):
    pass


class NotFound(ChatMateError):
    pass


class UserNotFound(NotFound):
    def __init__(self, username: str):
        super().__init__(f"User not found: {username}")
        self.username = username


class TaskNotFound(NotFound):
    def __init__(self, key: str):
        super().__init__(f"Task not found: {key}")
        self.key = key


class MeetingNotFound(NotFound):
    def __init__(self, task_id: str):
        super().__init__(f"Meeting record not found for task {task_id}")
        self.task_id = task_id


class DuplicateTaskId(ChatMateError):
    def __init__(self, unique_task_id: str):
        super().__init__(f"Task id already in use: {unique_task_id}")
        self.unique_task_id = unique_task_id


class NoCredential(ChatMateError):
    """The owning user has no LLM API key configured."""


class ClassificationFailure(ChatMateError):
    """Intent or topic LLM call failed; callers recover by treating the turn as a non-task."""


class TaskPersistenceFailure(ChatMateError):
    pass


class UnregisteredAsker(ChatMateError):
    pass


class OrganizerNotLinked(ChatMateError):
    def __init__(self, email: Optional[str]):
        super().__init__("Organizer has not linked Google Calendar.")
        self.email = email


class PartialSchedulingSuccess(ChatMateError):
    """Calendar event exists but the originating task could not be linked to it."""

    def __init__(self, task_id: str, reason: str):
        super().__init__(f"Event created but task {task_id} was not updated: {reason}")
        self.task_id = task_id
        self.reason = reason


class InvalidMeetingTransition(ChatMateError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Meeting status cannot move from {current} to {target}")
        self.current = current
        self.target = target


class LLMError(ChatMateError):
    pass


class LLMAuthError(LLMError):
    """The provider rejected the API key."""


class UpstreamTimeout(LLMError):
    pass
