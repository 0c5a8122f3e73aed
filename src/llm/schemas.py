from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class TaskIntent(BaseModel):
    """The message asks the owner to do something (follow up, remind, meet)."""

    kind: Literal["task"] = "task"
    description: str = Field(..., min_length=1)
    is_meeting: bool = False

    @property
    def is_task(self) -> bool:
        return True

    @property
    def requires_confirmation(self) -> bool:
        # Meeting requests are confirmed by the user before a task is written.
        return self.is_meeting


class NotTaskIntent(BaseModel):
    kind: Literal["not_task"] = "not_task"

    @property
    def is_task(self) -> bool:
        return False

    @property
    def is_meeting(self) -> bool:
        return False

    @property
    def requires_confirmation(self) -> bool:
        return False


IntentResult = Annotated[Union[TaskIntent, NotTaskIntent], Field(discriminator="kind")]
