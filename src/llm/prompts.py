"""Prompt builders for the classifier, the topic extractor and the final answer."""

from __future__ import annotations

from typing import Optional, Sequence

from chatmate.models import ConversationTurn, OwnerProfile

HISTORY_WINDOW = 6
TOPIC_WINDOW = 5


def format_history(history: Sequence[ConversationTurn], limit: int = HISTORY_WINDOW) -> str:
    lines = []
    for turn in list(history)[-limit:]:
        speaker = "User" if turn.type == "user" else "Assistant"
        lines.append(f"{speaker}: {turn.content}")
    return "\n".join(lines)


def topic_prompt(history: Sequence[ConversationTurn], question: str) -> str:
    return f"""Based on this conversation, identify the main topic being discussed.

Conversation:
{format_history(history, TOPIC_WINDOW)}
User: {question}

Reply with ONLY a short topic phrase of 3 to 5 words. No punctuation, no explanation."""


def classifier_prompt(question: str, history: Sequence[ConversationTurn]) -> str:
    context = format_history(history) or "(no earlier messages)"
    return f"""Decide whether the user's latest message asks the assistant's owner to DO something
for them later: follow up, get back to them, remind them, send something, set up a meeting or a call.
Plain questions about the owner (skills, experience, hobbies) are NOT tasks.

Recent conversation (for context only):
{context}

Latest message: "{question}"

Answer format (strict):
- First line: exactly YES or NO
- If YES, the following lines: a one-sentence description of the task from the owner's point of view"""


def answer_prompt(
    owner: OwnerProfile,
    question: str,
    history: Sequence[ConversationTurn],
    topic: Optional[str] = None,
) -> str:
    owner_name = owner.name or owner.username
    sections = [
        f"You are {owner_name}'s personal AI assistant. Answer based on the following details.",
        'If a question is unrelated, say "I don\'t have that information. If you have the '
        'answer to this, please contribute."',
        f"Here's {owner_name}'s latest data:\n{owner.prompt or '(none)'}",
    ]

    if owner.daily_tasks.content:
        sections.append(f"{owner_name}'s tasks for today:\n{owner.daily_tasks.content}")

    approved = owner.approved_contributions()
    if approved:
        kb = "\n".join(
            f"{i}. Q: {c.question}\n   A: {c.answer}" for i, c in enumerate(approved, start=1)
        )
        sections.append(f"Additional knowledge base (approved contributions):\n{kb}")

    history_text = format_history(history)
    if history_text:
        sections.append(f"Previous conversation:\n{history_text}")

    if topic:
        sections.append(f"Current conversation topic: {topic}")

    sections.append(f"Question: {question}")
    sections.append(f"Response style: {owner.user_prompt}")
    return "\n\n".join(sections)
