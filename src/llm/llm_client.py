import logging
import os
from typing import Optional

from chatmate.errors import LLMError, NoCredential
from llm.providers.base import LLMProvider

logger = logging.getLogger(__name__)

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "gemini").strip().lower()

DEFAULT_SYSTEM = "You are a helpful personal AI assistant."


class LLMClient:
    """Thin completion client over one provider, with a 'model tier' knob.

    The small tier is used for classification and topic extraction, the
    large tier for the final answer.
    """

    def __init__(self, provider: LLMProvider):
        self.provider = provider

    @classmethod
    def for_api_key(cls, api_key: Optional[str]) -> "LLMClient":
        """Build a client bound to the owning user's own API key."""
        if not (api_key or "").strip():
            raise NoCredential("No LLM API key configured")
        if LLM_PROVIDER == "openai":
            from llm.providers.openai_provider import OpenAIProvider

            return cls(OpenAIProvider(api_key=api_key.strip()))
        from llm.providers.gemini_provider import GeminiProvider

        return cls(GeminiProvider(api_key=api_key.strip()))

    def _select_model_name(self, model_tier: str) -> Optional[str]:
        if model_tier == "small":
            return os.getenv("LLM_MODEL_SMALL") or None
        return os.getenv("LLM_MODEL_LARGE") or None

    def complete(
        self,
        prompt: str,
        system: str = DEFAULT_SYSTEM,
        model_tier: str = "large",
    ) -> str:
        """Return the stripped completion text. Raises LLMError on empty output."""
        text = self.provider.generate(
            system=system, user=prompt, model=self._select_model_name(model_tier)
        )
        text = (text or "").strip()
        if not text:
            raise LLMError("LLM returned an empty completion")
        return text
