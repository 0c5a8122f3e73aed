"""Status rules for tasks and their meeting sub-records.

The parent task status and the meeting status move independently. Task status
changes are not validated (any enum value may follow any other); the meeting
status only moves forward.
"""

from __future__ import annotations

from chatmate.errors import InvalidMeetingTransition
from chatmate.models import MeetingStatus, TaskStatus

MEETING_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"pending", "scheduled", "cancelled"}),
    "scheduled": frozenset({"scheduled", "completed", "cancelled"}),
    "completed": frozenset({"completed"}),
    "cancelled": frozenset({"cancelled"}),
}


def can_transition_meeting(current: MeetingStatus, target: MeetingStatus) -> bool:
    return target in MEETING_TRANSITIONS.get(current, frozenset())


def check_meeting_transition(current: MeetingStatus, target: MeetingStatus) -> None:
    if not can_transition_meeting(current, target):
        raise InvalidMeetingTransition(current, target)


def toggled_status(current: TaskStatus) -> TaskStatus:
    """Admin panel toggle: inprogress <-> completed, anything else back to inprogress."""
    return "completed" if current == "inprogress" else "inprogress"
