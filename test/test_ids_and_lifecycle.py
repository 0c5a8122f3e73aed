from datetime import datetime

import pytest

from chatmate.errors import InvalidMeetingTransition
from chatmate.ids import generate_unique_task_id, is_task_id
from chatmate.lifecycle import can_transition_meeting, check_meeting_transition, toggled_status


def test_task_id_is_seconds_first_year_last():
    assert generate_unique_task_id(datetime(2026, 3, 7, 9, 5, 4)) == "04050907032026"


def test_task_id_is_fourteen_digits():
    uid = generate_unique_task_id()
    assert len(uid) == 14
    assert is_task_id(uid)
    assert not is_task_id("abc")


def test_task_ids_differ_across_seconds():
    a = generate_unique_task_id(datetime(2026, 1, 1, 12, 0, 0))
    b = generate_unique_task_id(datetime(2026, 1, 1, 12, 0, 1))
    assert a != b


def test_meeting_moves_forward_only():
    assert can_transition_meeting("pending", "scheduled")
    assert can_transition_meeting("scheduled", "completed")
    assert can_transition_meeting("pending", "cancelled")
    assert not can_transition_meeting("pending", "completed")
    assert not can_transition_meeting("completed", "scheduled")
    assert can_transition_meeting("cancelled", "cancelled")


def test_check_meeting_transition_raises():
    with pytest.raises(InvalidMeetingTransition):
        check_meeting_transition("cancelled", "scheduled")


def test_toggle():
    assert toggled_status("inprogress") == "completed"
    assert toggled_status("completed") == "inprogress"
    assert toggled_status("pending") == "inprogress"
