import importlib
import time

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from api.backend import BackendAPI
from api.dependencies import get_backend, get_google_auth_store, get_scheduler, get_store
from llm.llm_client import LLMClient
from scheduling.meeting_scheduler import MeetingScheduler
from storage.google_auth import GoogleAuthStore


def _import_app():
    # Import lazily so environment variables (if any) can be set before import.
    return importlib.import_module("api.main")


@pytest.fixture
def client(store, scripted_provider_factory):
    app = _import_app().app
    provider = scripted_provider_factory(classify="NO", answer="Alice builds payment APIs.")
    google_auth = GoogleAuthStore(store, key=Fernet.generate_key().decode())

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_google_auth_store] = lambda: google_auth
    app.dependency_overrides[get_backend] = lambda: BackendAPI(
        task_store=store, llm_factory=lambda api_key: LLMClient(provider)
    )
    app.dependency_overrides[get_scheduler] = lambda: MeetingScheduler(store, google_auth)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_prometheus_text(client) -> None:
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "text/plain" in r.headers.get("content-type", "")
    assert "chatmate_requests_total" in r.text
    assert "chatmate_tasks_created_total" in r.text


def test_health(client) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_chat_answers(client) -> None:
    r = client.post(
        "/chat",
        json={"username": "alice", "question": "What do you do?", "askerUsername": "olivia"},
    )
    assert r.status_code == 200
    assert r.json() == {"answer": "Alice builds payment APIs."}


def test_chat_unknown_owner(client) -> None:
    r = client.post("/chat", json={"username": "ghost", "question": "Hi"})
    assert r.status_code == 404


def test_chat_rejects_empty_question(client) -> None:
    r = client.post("/chat", json={"username": "alice", "question": ""})
    assert r.status_code == 422


def test_task_admin_flow(client) -> None:
    r = client.post(
        "/create-task",
        json={"userId": "alice", "taskQuestion": "Send me the deck", "taskDescription": "Send deck"},
    )
    assert r.status_code == 201
    task = r.json()["task"]
    uid = task["uniqueTaskId"]
    assert len(uid) == 14
    assert task["status"] == "inprogress"

    r = client.post("/find-task", json={"userId": "alice", "uniqueTaskId": uid})
    assert r.json()["task"]["taskQuestion"] == "Send me the deck"

    r = client.patch(
        "/tasks", json={"userId": "alice", "taskQuestion": "Send me the deck", "status": "completed"}
    )
    assert r.json()["task"]["status"] == "completed"

    r = client.get("/tasks/alice", params={"status": "completed"})
    assert [t["uniqueTaskId"] for t in r.json()["tasks"]] == [uid]

    r = client.post(f"/tasks/alice/{uid}/toggle")
    assert r.json()["task"]["status"] == "inprogress"

    r = client.delete(f"/tasks/{uid}", params={"userId": "alice"})
    assert r.status_code == 200
    r = client.post("/find-task", json={"userId": "alice", "uniqueTaskId": uid})
    assert r.status_code == 404


def test_create_task_with_explicit_duplicate_id(client) -> None:
    body = {"userId": "alice", "taskQuestion": "Call me", "uniqueTaskId": "00000001012026"}
    assert client.post("/create-task", json=body).status_code == 201
    assert client.post("/create-task", json=body).status_code == 409


def test_create_meeting_task_defaults(client) -> None:
    r = client.post(
        "/create-task",
        json={
            "userId": "alice",
            "taskQuestion": "Meeting request about Hiring",
            "topicContext": "Hiring",
            "isMeeting": {},
        },
    )
    task = r.json()["task"]
    assert task["status"] == "pending"
    assert task["isMeeting"]["title"] == "Hiring"
    assert task["isMeeting"]["status"] == "pending"


def test_find_task_needs_a_key(client) -> None:
    assert client.post("/find-task", json={"userId": "alice"}).status_code == 400


def test_update_meeting_info_requires_scheduled_meeting(client) -> None:
    client.post(
        "/create-task",
        json={
            "userId": "alice",
            "taskQuestion": "Meeting request about Hiring",
            "uniqueTaskId": "00000001012026",
            "isMeeting": {},
        },
    )
    body = {"username": "alice", "task_id": "00000001012026", "raw_transcript": "..."}
    assert client.post("/update-meeting-info", json=body).status_code == 409

    body["task_id"] = "99999999999999"
    assert client.post("/update-meeting-info", json=body).status_code == 404


def test_schedule_meeting_without_linked_organizer(client) -> None:
    r = client.post(
        "/schedule-meeting",
        json={
            "taskId": "00000001012026",
            "username": "alice",
            "title": "Hiring sync",
            "startTime": "2026-05-04T10:00:00+05:30",
            "endTime": "2026-05-04T11:00:00+05:30",
            "userEmails": ["olivia@example.com"],
        },
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Organizer has not linked Google Calendar."


def test_meeting_records(client) -> None:
    assert client.get("/meeting-records").json() == {"meetings": []}
    assert client.delete("/meeting-records/00000001012026").status_code == 404
    assert client.post("/meetings/reconcile").json() == {"reconciled": 0}


def test_google_status(client) -> None:
    r = client.get("/auth/google/status/olivia")
    assert r.json() == {"connected": False, "email": None}
    assert client.get("/auth/google/status/ghost").status_code == 404


def test_schedule_meeting_with_mixed_time_formats(client) -> None:
    body = {
        "taskId": "00000001012026",
        "username": "alice",
        "title": "Hiring sync",
        "startTime": "2026-05-04T10:00:00+05:30",
        "endTime": "2026-05-04T09:00:00",
        "userEmails": ["olivia@example.com"],
    }
    r = client.post("/schedule-meeting", json=body)
    assert r.status_code == 400
    assert "endTime" in r.json()["detail"]

    body["endTime"] = "2026-05-04T11:00:00"
    r = client.post("/schedule-meeting", json=body)
    assert r.status_code == 400
    assert r.json()["detail"] == "Organizer has not linked Google Calendar."


def test_abandoned_oauth_logins_expire(client, monkeypatch) -> None:
    auth = importlib.import_module("api.routers.auth")
    state = importlib.import_module("api.state")
    monkeypatch.setattr(state, "oauth_sessions", {})
    stale = time.monotonic() - auth.OAUTH_STATE_TTL_S - 1
    state.oauth_sessions["stale-login"] = ("olivia", stale)
    state.oauth_sessions["stale-callback"] = ("olivia", stale)

    fresh = auth._remember_state("alice")
    assert set(state.oauth_sessions) == {fresh}

    state.oauth_sessions["stale-callback"] = ("olivia", stale)
    r = client.get(
        "/auth/google/callback",
        params={"code": "abc", "state": "stale-callback"},
        follow_redirects=False,
    )
    assert r.status_code == 307
    assert r.headers["location"].endswith("error=invalid_state")
    assert "stale-callback" not in state.oauth_sessions
