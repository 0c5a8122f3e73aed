import pytest
from pydantic import ValidationError

from chatmate.models import DEFAULT_USER_PROMPT, MeetingInfo, OwnerProfile, Task


def test_task_defaults():
    task = Task(task_question="Can you send me the slides?")
    assert task.status == "inprogress"
    assert task.task_description == "Task request"
    assert task.is_meeting is None
    assert task.id


def test_task_rejects_blank_question():
    with pytest.raises(ValidationError):
        Task(task_question="   ")


def test_task_rejects_unknown_status():
    with pytest.raises(ValidationError):
        Task(task_question="x", status="done")


def test_wire_format_is_camel_case():
    task = Task(task_question="x", unique_task_id="01020304052026", is_meeting=MeetingInfo())
    data = task.model_dump(mode="json", by_alias=True)
    assert data["uniqueTaskId"] == "01020304052026"
    assert data["isMeeting"]["status"] == "pending"
    assert data["isMeeting"]["meetingRawData"] == ""


def test_task_accepts_camel_case_input():
    task = Task.model_validate({"taskQuestion": "x", "topicContext": "Budget"})
    assert task.topic_context == "Budget"


def test_owner_profile_defaults_and_snapshot(owner):
    assert OwnerProfile(username="zed").user_prompt == DEFAULT_USER_PROMPT
    snap = owner.snapshot()
    assert snap.username == "alice"
    assert snap.email == "alice@example.com"


def test_only_approved_contributions(owner):
    approved = owner.approved_contributions()
    assert [c.answer for c in approved] == ["Python"]
