"""Two-turn confirmation for meeting requests.

Turn 1: the assistant detects a meeting request and asks
"... want to have a meeting about <topic>?". Turn 2: if the user replies
with a bare affirmation, the meeting task is created without asking the
classifier again. The state lives entirely in the conversation history.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from chatmate.models import ConversationTurn

logger = logging.getLogger(__name__)

CONFIRMATION_MARKERS = ("want to have a meeting", "want to schedule a meeting")
AFFIRMATIONS = frozenset({"yes", "yeah", "sure", "confirm", "ok", "okay", "yep"})
FALLBACK_TOPIC = "the discussed topic"

TOPIC_PATTERN = re.compile(r"about (.*?)(\?|\.)", re.IGNORECASE)
WORD_PATTERN = re.compile(r"[a-z']+")


@dataclass(frozen=True)
class ConfirmedMeeting:
    topic: str
    prompt_text: str

    @property
    def question(self) -> str:
        return f"Meeting request about {self.topic}"

    @property
    def description(self) -> str:
        return f"Schedule a meeting to discuss {self.topic}"

    @property
    def title(self) -> str:
        return f"Meeting about {self.topic}"


def confirmation_question(topic: str) -> str:
    """Bot reply that arms the gate for the next turn."""
    return (
        f"It sounds like you'd like to connect with the owner. "
        f"Do you want to have a meeting about {topic}? "
        f"Reply 'yes' to confirm and I'll pass the request on."
    )


def is_confirmation_prompt(text: str) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in CONFIRMATION_MARKERS)


def is_affirmation(message: str) -> bool:
    """Whole message, first word or last word is an affirmation keyword.

    Matching is on whole words, so "yesterday" or "okayish" never count.
    """
    text = (message or "").strip().lower()
    words = WORD_PATTERN.findall(text)
    if not words:
        return False
    return text in AFFIRMATIONS or words[0] in AFFIRMATIONS or words[-1] in AFFIRMATIONS


def extract_topic(prompt_text: str) -> str:
    match = TOPIC_PATTERN.search(prompt_text or "")
    if match and match.group(1).strip():
        return match.group(1).strip()
    logger.warning("Could not read meeting topic from confirmation prompt; using fallback")
    return FALLBACK_TOPIC


def _prior_turns(history: Sequence[ConversationTurn], message: str) -> List[ConversationTurn]:
    turns = list(history)
    # Tolerate callers that already appended the current message.
    if turns and turns[-1].type == "user" and turns[-1].content == message:
        turns = turns[:-1]
    return turns


def check_confirmation(
    history: Sequence[ConversationTurn], message: str
) -> Optional[ConfirmedMeeting]:
    """Return the confirmed meeting if this turn answers a pending confirmation prompt."""
    turns = _prior_turns(history, message)
    if not turns:
        return None

    previous = turns[-1]
    if previous.type != "bot" or not is_confirmation_prompt(previous.content):
        return None
    if not is_affirmation(message):
        return None

    return ConfirmedMeeting(topic=extract_topic(previous.content), prompt_text=previous.content)
