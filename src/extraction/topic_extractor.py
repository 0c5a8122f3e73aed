import logging
from typing import Optional, Sequence

from api.metrics import LLM_CALLS_TOTAL
from chatmate.errors import ClassificationFailure
from chatmate.models import ConversationTurn
from llm.llm_client import LLMClient
from llm.prompts import topic_prompt

logger = logging.getLogger(__name__)

MIN_TURNS = 2
MAX_TOPIC_WORDS = 5


def clean_topic(raw: str) -> Optional[str]:
    line = (raw or "").strip().splitlines()[0] if (raw or "").strip() else ""
    line = line.strip().strip("\"'`*").rstrip(".!?:;").strip()
    if line.lower().startswith("topic:"):
        line = line[len("topic:"):].strip()
    words = line.split()
    if not words:
        return None
    return " ".join(words[:MAX_TOPIC_WORDS])


class TopicExtractor:
    """Best-effort short topic label for the conversation so far."""

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client

    def extract(
        self, history: Sequence[ConversationTurn], question: str
    ) -> Optional[str]:
        if self.llm is None or len(history) < MIN_TURNS:
            return None

        try:
            raw = self._ask(history, question)
        except ClassificationFailure as e:
            logger.warning(f"Topic extraction failed: {e}")
            return None
        return clean_topic(raw)

    def _ask(self, history: Sequence[ConversationTurn], question: str) -> str:
        try:
            raw = self.llm.complete(topic_prompt(history, question), model_tier="small")
        except Exception as e:
            LLM_CALLS_TOTAL.labels(purpose="topic", outcome="error").inc()
            raise ClassificationFailure(str(e)) from e
        LLM_CALLS_TOTAL.labels(purpose="topic", outcome="ok").inc()
        return raw
