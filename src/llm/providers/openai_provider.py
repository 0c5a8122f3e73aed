from __future__ import annotations

import os
from typing import Optional

from chatmate.errors import LLMError
from .base import LLMProvider, post_json


class OpenAIProvider(LLMProvider):
    def __init__(self, api_key: Optional[str] = None, temperature: float = 0.2):
        self.api_key = (api_key or os.getenv("OPENAI_API_KEY", "")).strip()
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()
        self.base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").strip()
        self.temperature = temperature

        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is missing")

    def generate(self, *, system: str, user: str, model: Optional[str] = None) -> str:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model or self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
        }

        data = post_json(url, headers=headers, payload=payload)

        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError) as e:
            raise LLMError(f"Unexpected OpenAI response shape: {data!r:.200}") from e
