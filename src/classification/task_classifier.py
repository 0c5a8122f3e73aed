import logging
import re
from typing import Optional, Sequence

from api.metrics import LLM_CALLS_TOTAL
from chatmate.errors import ClassificationFailure
from chatmate.models import DEFAULT_TASK_DESCRIPTION, ConversationTurn
from llm.llm_client import LLMClient
from llm.prompts import classifier_prompt
from llm.schemas import IntentResult, NotTaskIntent, TaskIntent

logger = logging.getLogger(__name__)

MEETING_PATTERN = re.compile(r"\b(meeting|call)", re.IGNORECASE)

CLASSIFIER_SYSTEM = "You classify chat messages. Follow the answer format exactly."


def parse_classifier_output(text: str) -> Optional[TaskIntent]:
    """Parse the YES/NO line protocol. None means 'not a task' (or unparseable)."""
    lines = (text or "").strip().splitlines()
    if not lines:
        return None

    verdict = lines[0].strip().upper()
    if not verdict.startswith("YES"):
        if not verdict.startswith("NO"):
            logger.warning(f"Unrecognised classifier verdict: {lines[0][:80]!r}")
        return None

    description = "\n".join(lines[1:]).strip() or DEFAULT_TASK_DESCRIPTION
    return TaskIntent(description=description)


def looks_like_meeting(*texts: str) -> bool:
    return any(MEETING_PATTERN.search(t or "") for t in texts)


class TaskClassifier:
    """Labels a chat turn as task / not-task, and task turns as meeting / not-meeting."""

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client

    def classify(
        self, question: str, history: Sequence[ConversationTurn] = ()
    ) -> IntentResult:
        # Any failure degrades to "not a task".
        if self.llm is None:
            return NotTaskIntent()

        try:
            raw = self._ask(question, history)
        except ClassificationFailure as e:
            logger.warning(f"Task classification failed: {e}")
            return NotTaskIntent()

        intent = parse_classifier_output(raw)
        if intent is None:
            return NotTaskIntent()

        intent.is_meeting = looks_like_meeting(intent.description, question)
        return intent

    def _ask(self, question: str, history: Sequence[ConversationTurn]) -> str:
        try:
            raw = self.llm.complete(
                classifier_prompt(question, history),
                system=CLASSIFIER_SYSTEM,
                model_tier="small",
            )
        except Exception as e:
            LLM_CALLS_TOTAL.labels(purpose="classify", outcome="error").inc()
            raise ClassificationFailure(str(e)) from e
        LLM_CALLS_TOTAL.labels(purpose="classify", outcome="ok").inc()
        return raw
