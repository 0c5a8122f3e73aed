from chatmate.models import ConversationTurn
from classification.confirmation_gate import (
    FALLBACK_TOPIC,
    check_confirmation,
    confirmation_question,
    extract_topic,
    is_affirmation,
)


def _history(bot_text: str):
    return [
        ConversationTurn(type="user", content="Can we set up a meeting?"),
        ConversationTurn(type="bot", content=bot_text),
    ]


def test_affirmations():
    for message in ("yes", "Yes!", "yeah sure", "ok", "Okay, let's do it", "sounds good, yep"):
        assert is_affirmation(message), message
    for message in ("yesterday was fine", "no", "not now", "", "okayish"):
        assert not is_affirmation(message), message


def test_confirmation_after_prompt():
    confirmed = check_confirmation(_history(confirmation_question("Budget review")), "yes")
    assert confirmed.topic == "Budget review"
    assert confirmed.question == "Meeting request about Budget review"
    assert confirmed.title == "Meeting about Budget review"


def test_no_confirmation_without_prompt():
    assert check_confirmation(_history("Alice is a backend engineer."), "yes") is None
    assert check_confirmation([], "yes") is None


def test_no_confirmation_for_other_reply():
    assert check_confirmation(_history(confirmation_question("Budget")), "yesterday") is None


def test_current_message_already_in_history():
    history = _history(confirmation_question("Hiring")) + [
        ConversationTurn(type="user", content="sure")
    ]
    assert check_confirmation(history, "sure").topic == "Hiring"


def test_topic_fallback():
    assert extract_topic("Do you want to have a meeting") == FALLBACK_TOPIC
    confirmed = check_confirmation(_history("Do you want to schedule a meeting"), "ok")
    assert confirmed.topic == FALLBACK_TOPIC
