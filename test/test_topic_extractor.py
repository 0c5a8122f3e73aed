from prometheus_client import REGISTRY

from chatmate.models import ConversationTurn
from extraction.topic_extractor import TopicExtractor, clean_topic
from llm.llm_client import LLMClient

HISTORY = [
    ConversationTurn(type="user", content="Tell me about your startup"),
    ConversationTurn(type="bot", content="Alice is building a payments API."),
]


class CountingProvider:
    def __init__(self, text):
        self.text = text
        self.calls = 0

    def generate(self, *, system, user, model=None):
        self.calls += 1
        if isinstance(self.text, Exception):
            raise self.text
        return self.text


def test_clean_topic():
    assert clean_topic('"Payments API launch."') == "Payments API launch"
    assert clean_topic("Topic: Hiring plans") == "Hiring plans"
    assert clean_topic("one two three four five six seven") == "one two three four five"
    assert clean_topic("   ") is None


def test_short_history_skips_llm():
    provider = CountingProvider("Anything")
    assert TopicExtractor(LLMClient(provider)).extract(HISTORY[:1], "hi") is None
    assert provider.calls == 0


def test_extract_topic():
    provider = CountingProvider("Payments API")
    assert TopicExtractor(LLMClient(provider)).extract(HISTORY, "When is launch?") == "Payments API"


def test_extract_failure_is_none():
    provider = CountingProvider(RuntimeError("down"))
    assert TopicExtractor(LLMClient(provider)).extract(HISTORY, "When is launch?") is None


def test_topic_calls_are_counted():
    labels = {"purpose": "topic", "outcome": "ok"}
    before = REGISTRY.get_sample_value("chatmate_llm_calls_total", labels) or 0.0
    TopicExtractor(LLMClient(CountingProvider("Payments API"))).extract(HISTORY, "When?")
    assert REGISTRY.get_sample_value("chatmate_llm_calls_total", labels) == before + 1
