import json

import pytest

from chatmate.models import Contribution, OwnerProfile, UserSnapshot
from storage.json_store import JsonStore


class FakeProvider:
    def __init__(self, response_text: str):
        self._response_text = response_text

    def generate(self, *, system: str, user: str, model=None) -> str:
        return self._response_text


class ScriptedProvider:
    """Replies by prompt kind (classifier, topic, answer) and records the calls."""

    def __init__(self, classify="NO", topic="Project Alpha", answer="Happy to help."):
        self.replies = {"classify": classify, "topic": topic, "answer": answer}
        self.calls = []

    def generate(self, *, system: str, user: str, model=None) -> str:
        if "exactly YES or NO" in user:
            kind = "classify"
        elif "main topic" in user:
            kind = "topic"
        else:
            kind = "answer"
        self.calls.append((kind, user))

        reply = self.replies[kind]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def count(self, kind: str) -> int:
        return sum(1 for k, _ in self.calls if k == kind)


@pytest.fixture
def fake_provider_factory():
    def _make(response_text: str):
        return FakeProvider(response_text)
    return _make


@pytest.fixture
def scripted_provider_factory():
    def _make(**replies):
        return ScriptedProvider(**replies)
    return _make


@pytest.fixture
def owner() -> OwnerProfile:
    return OwnerProfile(
        username="alice",
        name="Alice",
        email="alice@example.com",
        gemini_api_key="test-key",
        prompt="Alice is a backend engineer who works on payment systems.",
        contributions=[
            Contribution(question="Favourite language?", answer="Python", status="approved"),
            Contribution(question="Lives where?", answer="Berlin", status="pending"),
        ],
    )


@pytest.fixture
def organizer() -> OwnerProfile:
    return OwnerProfile(username="olivia", name="Olivia", email="olivia@example.com")


@pytest.fixture
def asker() -> UserSnapshot:
    return UserSnapshot(username="bob", name="Bob", email="bob@example.com")


@pytest.fixture
def store(tmp_path, owner, organizer) -> JsonStore:
    path = tmp_path / "chatmate.json"
    users = {u.username: {**u.model_dump(mode="json"), "tasks": []} for u in (owner, organizer)}
    path.write_text(json.dumps({"users": users, "meetings": []}))
    return JsonStore(path=str(path))
