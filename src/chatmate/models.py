from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


TaskStatus = Literal["pending", "inprogress", "completed", "cancelled"]
MeetingStatus = Literal["pending", "scheduled", "completed", "cancelled"]
ContributionStatus = Literal["pending", "approved", "rejected"]
Speaker = Literal["user", "bot"]

DEFAULT_USER_PROMPT = "You Have to give precise answers to the questions"
DEFAULT_TASK_DESCRIPTION = "Task request"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserSnapshot(CamelModel):
    """Copy of the asking user's profile taken when a task is created."""

    username: str
    name: Optional[str] = None
    email: Optional[str] = None
    mobile_no: Optional[str] = None
    prompt: Optional[str] = None


class MeetingInfo(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    duration: Optional[str] = None
    status: MeetingStatus = "pending"
    meeting_link: Optional[str] = None
    meeting_raw_data: str = ""
    meeting_minutes: str = ""
    meeting_summary: str = ""


class Task(CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    unique_task_id: str = ""
    task_question: str = Field(..., min_length=1)
    task_description: str = DEFAULT_TASK_DESCRIPTION
    topic_context: Optional[str] = None
    status: TaskStatus = "inprogress"
    present_user_data: Optional[UserSnapshot] = None
    is_meeting: Optional[MeetingInfo] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("task_question")
    @classmethod
    def question_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("taskQuestion must not be blank")
        return v


class Contribution(CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: Optional[str] = None
    question: str
    answer: str
    status: ContributionStatus = "pending"
    created_at: datetime = Field(default_factory=_utcnow)


class DailyTasks(CamelModel):
    content: str = ""
    last_updated: datetime = Field(default_factory=_utcnow)


class GoogleLink(CamelModel):
    """Linked Google account. Tokens are stored encrypted by GoogleAuthStore."""

    google_id: Optional[str] = None
    email: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expiry: Optional[datetime] = None


class OwnerProfile(CamelModel):
    """The user whose assistant is being chatted with."""

    username: str
    name: str = ""
    email: Optional[str] = None
    mobile_no: Optional[str] = None
    gemini_api_key: Optional[str] = None
    plan: Literal["free", "pro"] = "free"
    prompt: str = ""
    user_prompt: str = DEFAULT_USER_PROMPT
    daily_tasks: DailyTasks = Field(default_factory=DailyTasks)
    contributions: List[Contribution] = Field(default_factory=list)
    google: Optional[GoogleLink] = None
    created_at: datetime = Field(default_factory=_utcnow)

    def snapshot(self) -> UserSnapshot:
        return UserSnapshot(
            username=self.username,
            name=self.name,
            email=self.email,
            mobile_no=self.mobile_no,
            prompt=self.prompt,
        )

    def approved_contributions(self) -> List[Contribution]:
        return [c for c in self.contributions if c.status == "approved"]


class ConversationTurn(CamelModel):
    type: Speaker
    content: str
    timestamp: Optional[datetime] = None


class MeetingRecord(CamelModel):
    """Standalone record of a meeting created on the calendar."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    task_id: str
    username: str
    google_meeting_link: Optional[str] = None
    event_link: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: str
    created_at: datetime = Field(default_factory=_utcnow)
