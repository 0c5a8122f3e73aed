from datetime import datetime, timedelta

import pytest

from api.backend import (
    ANSWER_FAILURE_MESSAGE,
    BAD_KEY_MESSAGE,
    NO_CREDENTIAL_MESSAGE,
    REGISTRATION_MESSAGE,
    TASK_FAILURE_MESSAGE,
    BackendAPI,
)
from chatmate.errors import LLMAuthError, UpstreamTimeout
from chatmate.ids import generate_unique_task_id
from chatmate.models import ConversationTurn, Task
from llm.llm_client import LLMClient
from storage.json_store import JsonStore

NOW = datetime(2026, 5, 4, 10, 30, 15)

GREETING = [
    ConversationTurn(type="user", content="Hi, what does Alice work on?"),
    ConversationTurn(type="bot", content="Alice works on payment systems."),
]


def _backend(store, provider) -> BackendAPI:
    return BackendAPI(
        task_store=store,
        llm_factory=lambda api_key: LLMClient(provider),
        clock=lambda: NOW,
    )


class BrokenStore(JsonStore):
    async def create_task(self, username, task):
        raise RuntimeError("disk full")


@pytest.mark.asyncio
async def test_no_credential(store, owner):
    owner.gemini_api_key = None
    backend = BackendAPI(task_store=store)
    assert await backend.get_answer("Hello", owner) == NO_CREDENTIAL_MESSAGE
    assert await store.list_tasks("alice") == []


@pytest.mark.asyncio
async def test_plain_question_is_answered(store, owner, asker, scripted_provider_factory):
    provider = scripted_provider_factory(classify="NO", answer="Alice knows Python and Go.")
    reply = await _backend(store, provider).get_answer("What are your skills?", owner, asker)

    assert reply == "Alice knows Python and Go."
    assert await store.list_tasks("alice") == []

    prompt = [user for kind, user in provider.calls if kind == "answer"][0]
    assert "Q: Favourite language?" in prompt
    assert "Berlin" not in prompt
    assert "Question: What are your skills?" in prompt


@pytest.mark.asyncio
async def test_task_is_created_with_tracking_id(store, owner, asker, scripted_provider_factory):
    provider = scripted_provider_factory(classify="YES\nSend Bob the API docs")
    reply = await _backend(store, provider).get_answer("Can you send me the API docs?", owner, asker)

    tasks = await store.list_tasks("alice")
    assert len(tasks) == 1
    task = tasks[0]
    assert f"Tracking ID: {task.unique_task_id}" in reply
    assert task.unique_task_id == generate_unique_task_id(NOW)
    assert task.status == "inprogress"
    assert task.task_description == "Send Bob the API docs"
    assert task.present_user_data.username == "bob"
    assert task.is_meeting is None


@pytest.mark.asyncio
async def test_task_description_carries_topic(store, owner, asker, scripted_provider_factory):
    provider = scripted_provider_factory(classify="YES\nShare the roadmap", topic="Payments roadmap")
    await _backend(store, provider).get_answer("Could you share the roadmap?", owner, asker, GREETING)

    task = (await store.list_tasks("alice"))[0]
    assert task.topic_context == "Payments roadmap"
    assert task.task_description == "Share the roadmap (Context: Payments roadmap)"


@pytest.mark.asyncio
async def test_unregistered_asker_is_deflected(store, owner, scripted_provider_factory):
    provider = scripted_provider_factory(classify="YES\nFollow up with the visitor")
    reply = await _backend(store, provider).get_answer("Please get back to me", owner, None)

    assert reply == REGISTRATION_MESSAGE
    assert await store.list_tasks("alice") == []


@pytest.mark.asyncio
async def test_meeting_request_needs_two_turns(store, owner, asker, scripted_provider_factory):
    provider = scripted_provider_factory(
        classify="YES\nSet up a call about Project Alpha", topic="Project Alpha"
    )
    backend = _backend(store, provider)
    question = "Can we set up a call to discuss Project Alpha?"

    first = await backend.get_answer(question, owner, asker, GREETING)
    assert "want to have a meeting about Project Alpha?" in first
    assert await store.list_tasks("alice") == []

    calls_before = len(provider.calls)
    history = GREETING + [
        ConversationTurn(type="user", content=question),
        ConversationTurn(type="bot", content=first),
    ]
    second = await backend.get_answer("yes", owner, asker, history)

    assert "Tracking ID" in second
    assert len(provider.calls) == calls_before

    tasks = await store.list_tasks("alice")
    assert len(tasks) == 1
    meeting = tasks[0]
    assert meeting.topic_context == "Project Alpha"
    assert meeting.task_question == "Meeting request about Project Alpha"
    assert meeting.status == "pending"
    assert meeting.is_meeting.status == "pending"
    assert meeting.is_meeting.title == "Meeting about Project Alpha"


@pytest.mark.asyncio
async def test_confirmation_without_asker_is_deflected(store, owner, scripted_provider_factory):
    provider = scripted_provider_factory()
    history = [ConversationTurn(type="bot", content="Do you want to have a meeting about Pricing?")]
    reply = await _backend(store, provider).get_answer("yes", owner, None, history)
    assert reply == REGISTRATION_MESSAGE
    assert await store.list_tasks("alice") == []


@pytest.mark.asyncio
async def test_negative_reply_to_confirmation_is_a_normal_turn(
    store, owner, asker, scripted_provider_factory
):
    provider = scripted_provider_factory(classify="NO", answer="No problem.")
    history = GREETING + [
        ConversationTurn(type="bot", content="Do you want to have a meeting about Pricing?")
    ]
    reply = await _backend(store, provider).get_answer("no thanks", owner, asker, history)
    assert reply == "No problem."
    assert provider.count("classify") == 1


@pytest.mark.asyncio
async def test_persistence_failure_returns_apology(tmp_path, owner, asker, scripted_provider_factory):
    provider = scripted_provider_factory(classify="YES\nSend the invoice")
    store = BrokenStore(path=str(tmp_path / "broken.json"))
    reply = await _backend(store, provider).get_answer("Send me the invoice", owner, asker)
    assert reply == TASK_FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_same_second_collision_takes_next_second(store, owner, asker, scripted_provider_factory):
    await store.create_task(
        "alice", Task(unique_task_id=generate_unique_task_id(NOW), task_question="earlier")
    )
    provider = scripted_provider_factory(classify="YES\nSend the invoice")
    reply = await _backend(store, provider).get_answer("Send me the invoice", owner, asker)

    expected = generate_unique_task_id(NOW + timedelta(seconds=1))
    assert f"Tracking ID: {expected}" in reply
    assert (await store.find_task_by_unique_id("alice", expected)).task_question == "Send me the invoice"


@pytest.mark.asyncio
async def test_rejected_key_gets_specific_message(store, owner, asker, scripted_provider_factory):
    provider = scripted_provider_factory(answer=LLMAuthError("401"))
    assert await _backend(store, provider).get_answer("Hi", owner, asker) == BAD_KEY_MESSAGE


@pytest.mark.asyncio
async def test_answer_timeout_gets_generic_apology(store, owner, asker, scripted_provider_factory):
    provider = scripted_provider_factory(answer=UpstreamTimeout("slow"))
    assert await _backend(store, provider).get_answer("Hi", owner, asker) == ANSWER_FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_classifier_failure_still_answers(store, owner, asker, scripted_provider_factory):
    provider = scripted_provider_factory(classify=RuntimeError("down"), answer="Here you go.")
    assert await _backend(store, provider).get_answer("Hi", owner, asker) == "Here you go."
    assert await store.list_tasks("alice") == []


@pytest.mark.asyncio
async def test_blank_key_counts_as_missing(store, owner):
    owner.gemini_api_key = "   "
    backend = BackendAPI(task_store=store)
    assert await backend.get_answer("Hello", owner) == NO_CREDENTIAL_MESSAGE
