import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from api.metrics import CONFIRMATIONS_REQUESTED_TOTAL, LLM_CALLS_TOTAL, TASKS_CREATED_TOTAL
from chatmate.errors import (
    DuplicateTaskId,
    LLMAuthError,
    NoCredential,
    TaskPersistenceFailure,
    UnregisteredAsker,
)
from chatmate.ids import generate_unique_task_id
from chatmate.models import (
    ConversationTurn,
    MeetingInfo,
    OwnerProfile,
    Task,
    UserSnapshot,
)
from classification.confirmation_gate import (
    FALLBACK_TOPIC,
    ConfirmedMeeting,
    check_confirmation,
    confirmation_question,
)
from classification.task_classifier import TaskClassifier
from extraction.topic_extractor import TopicExtractor
from llm.llm_client import LLMClient
from llm.prompts import HISTORY_WINDOW, answer_prompt
from storage.base import TaskStore

logger = logging.getLogger(__name__)

NO_CREDENTIAL_MESSAGE = (
    "This assistant isn't set up yet: no API key is configured for this profile."
)
REGISTRATION_MESSAGE = (
    "I'd be happy to pass this on, but I can only track requests from registered users. "
    "Please register or log in first so the owner can get back to you."
)
TASK_FAILURE_MESSAGE = (
    "I'm sorry, I couldn't save your request right now. Please try again in a moment."
)
ANSWER_FAILURE_MESSAGE = "I'm sorry, I couldn't generate a response right now. Please try again later."
BAD_KEY_MESSAGE = (
    "I couldn't reach the language model because this assistant's API key was rejected. "
    "Please let the owner know so they can update it."
)

MAX_ID_ATTEMPTS = 60


class BackendAPI:
    """Central orchestration component: one chat turn in, one reply string out.

    Order of work per turn: credential check, meeting confirmation gate,
    topic extraction, intent classification, then either task creation,
    a meeting confirmation question, or the final grounded answer.
    """

    def __init__(
        self,
        task_store: TaskStore,
        llm_factory: Callable[[Optional[str]], LLMClient] = LLMClient.for_api_key,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.task_store = task_store
        self.llm_factory = llm_factory
        self.clock = clock

    async def get_answer(
        self,
        question: str,
        owner: OwnerProfile,
        asker: Optional[UserSnapshot] = None,
        history: Sequence[ConversationTurn] = (),
    ) -> str:
        history = list(history)[-HISTORY_WINDOW:]

        try:
            llm = self.llm_factory(owner.gemini_api_key)
        except NoCredential:
            logger.info(f"No LLM credential for {owner.username}")
            return NO_CREDENTIAL_MESSAGE

        try:
            return await self._respond(llm, question, owner, asker, history)
        except UnregisteredAsker:
            logger.info(f"Deflected a task request for {owner.username} from an unregistered asker")
            return REGISTRATION_MESSAGE

    async def _respond(
        self,
        llm: LLMClient,
        question: str,
        owner: OwnerProfile,
        asker: Optional[UserSnapshot],
        history: List[ConversationTurn],
    ) -> str:
        # 1. A "yes" to our own meeting question skips classification.
        confirmed = check_confirmation(history, question)
        if confirmed is not None:
            return await self._create_confirmed_meeting(owner, asker, confirmed)

        # 2. Topic (best effort) and intent.
        topic = await asyncio.to_thread(TopicExtractor(llm).extract, history, question)
        intent = await asyncio.to_thread(TaskClassifier(llm).classify, question, history)

        if intent.is_task:
            _require_asker(asker)

            if intent.is_meeting and intent.requires_confirmation:
                CONFIRMATIONS_REQUESTED_TOTAL.inc()
                return confirmation_question(_topic_phrase(topic, intent.description))

            description = intent.description
            if topic:
                description = f"{description} (Context: {topic})"
            task = Task(
                task_question=question,
                task_description=description,
                topic_context=topic,
                status="inprogress",
                present_user_data=asker,
            )
            return await self._persist_and_confirm(owner, task, kind="task")

        # 3. Plain answer.
        return await self._answer(llm, owner, question, history, topic)

    async def _create_confirmed_meeting(
        self,
        owner: OwnerProfile,
        asker: Optional[UserSnapshot],
        confirmed: ConfirmedMeeting,
    ) -> str:
        _require_asker(asker)

        task = Task(
            task_question=confirmed.question,
            task_description=confirmed.description,
            topic_context=confirmed.topic,
            status="pending",
            present_user_data=asker,
            is_meeting=MeetingInfo(
                title=confirmed.title,
                description=confirmed.description,
                status="pending",
            ),
        )
        return await self._persist_and_confirm(owner, task, kind="meeting")

    async def _persist_and_confirm(self, owner: OwnerProfile, task: Task, kind: str) -> str:
        try:
            saved = await self.create_task(owner.username, task)
        except Exception as e:
            logger.exception(f"Failed to create {kind} task for {owner.username}: {e}")
            return TASK_FAILURE_MESSAGE

        TASKS_CREATED_TOTAL.labels(kind=kind).inc()
        owner_name = owner.name or owner.username
        if kind == "meeting":
            return (
                f"Great! I've sent your meeting request about {saved.topic_context} to "
                f"{owner_name}. You'll be contacted once it's scheduled. "
                f"Tracking ID: {saved.unique_task_id}"
            )
        return (
            f"I've noted your request and {owner_name} will follow up with you. "
            f"Tracking ID: {saved.unique_task_id}"
        )

    async def create_task(self, username: str, task: Task) -> Task:
        """Persist a task under a fresh timestamp id.

        Ids have one-second resolution, so on a collision within the same
        user the next free second is taken.
        """
        now = self.clock()
        for offset in range(MAX_ID_ATTEMPTS):
            task.unique_task_id = generate_unique_task_id(now + timedelta(seconds=offset))
            try:
                return await self.task_store.create_task(username, task)
            except DuplicateTaskId:
                logger.info(f"Task id {task.unique_task_id} taken for {username}, retrying")
        raise TaskPersistenceFailure(f"No free task id for {username} near {now:%H:%M:%S}")

    async def _answer(
        self,
        llm: LLMClient,
        owner: OwnerProfile,
        question: str,
        history: Sequence[ConversationTurn],
        topic: Optional[str],
    ) -> str:
        prompt = answer_prompt(owner, question, history, topic)
        try:
            answer = await asyncio.to_thread(llm.complete, prompt)
        except LLMAuthError as e:
            LLM_CALLS_TOTAL.labels(purpose="answer", outcome="auth_error").inc()
            logger.error(f"LLM key rejected for {owner.username}: {e}")
            return BAD_KEY_MESSAGE
        except Exception as e:
            LLM_CALLS_TOTAL.labels(purpose="answer", outcome="error").inc()
            logger.error(f"Error generating answer for {owner.username}: {e}")
            return ANSWER_FAILURE_MESSAGE

        LLM_CALLS_TOTAL.labels(purpose="answer", outcome="ok").inc()
        return answer


def _require_asker(asker: Optional[UserSnapshot]) -> UserSnapshot:
    if asker is None:
        raise UnregisteredAsker("Task requests need a registered asker")
    return asker


def _topic_phrase(topic: Optional[str], description: str) -> str:
    """Topic to embed in the confirmation question; must not contain '?' or '.'."""
    for candidate in (topic, description):
        if candidate:
            phrase = candidate.replace("?", "").strip().rstrip(".").strip()
            if phrase and "." not in phrase:
                return phrase
    return FALLBACK_TOPIC
