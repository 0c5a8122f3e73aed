from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from chatmate.models import MeetingRecord, OwnerProfile, Task, TaskStatus


class UserStore(ABC):
    @abstractmethod
    async def get_user(self, username: str) -> OwnerProfile:
        """Raises UserNotFound."""
        raise NotImplementedError

    @abstractmethod
    async def save_user(self, user: OwnerProfile) -> None:
        """Insert or replace the profile (contributions and google link included)."""
        raise NotImplementedError

    @abstractmethod
    async def find_users_by_email(self, emails: List[str]) -> List[OwnerProfile]:
        raise NotImplementedError


class TaskStore(ABC):
    """Task records, always scoped to one owning user.

    Every call reads or writes the backing store; nothing is cached.
    """

    @abstractmethod
    async def create_task(self, username: str, task: Task) -> Task:
        """Persist a new task.

        Raises UserNotFound if the owner does not exist and DuplicateTaskId if
        the owner already has a task with the same unique_task_id.
        """
        raise NotImplementedError

    @abstractmethod
    async def find_task_by_unique_id(self, username: str, unique_task_id: str) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def find_task_by_question(self, username: str, question: str) -> Task:
        """Exact match on task_question, oldest match first."""
        raise NotImplementedError

    @abstractmethod
    async def list_tasks(
        self, username: str, status: Optional[TaskStatus] = None
    ) -> List[Task]:
        """Newest first."""
        raise NotImplementedError

    @abstractmethod
    async def update_task_status(
        self, username: str, unique_task_id: str, status: TaskStatus
    ) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def update_meeting(
        self, username: str, unique_task_id: str, fields: Dict[str, Any]
    ) -> Task:
        """Merge snake_case MeetingInfo fields into the task's meeting sub-record."""
        raise NotImplementedError

    @abstractmethod
    async def delete_task(self, username: str, unique_task_id: str) -> None:
        raise NotImplementedError


class MeetingStore(ABC):
    @abstractmethod
    async def save_meeting(self, record: MeetingRecord) -> MeetingRecord:
        raise NotImplementedError

    @abstractmethod
    async def list_meetings(self, username: Optional[str] = None) -> List[MeetingRecord]:
        raise NotImplementedError

    @abstractmethod
    async def delete_meeting_by_task_id(self, task_id: str) -> MeetingRecord:
        """Raises MeetingNotFound."""
        raise NotImplementedError


class Store(UserStore, TaskStore, MeetingStore):
    """A backend providing all three record families."""

    async def health_check(self) -> dict:
        return {"status": "healthy"}

    async def close(self) -> None:
        return None
