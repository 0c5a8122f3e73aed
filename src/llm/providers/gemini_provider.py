from __future__ import annotations

import os
from typing import Optional

from chatmate.errors import LLMError
from .base import LLMProvider, post_json


class GeminiProvider(LLMProvider):
    def __init__(self, api_key: str, temperature: float = 0.8, max_output_tokens: int = 1024):
        self.api_key = (api_key or "").strip()
        self.model = os.getenv("GEMINI_MODEL", "gemini-1.5-flash").strip()
        self.base_url = os.getenv(
            "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        ).strip()
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

        if not self.api_key:
            raise RuntimeError("Gemini API key is missing")

    def generate(self, *, system: str, user: str, model: Optional[str] = None) -> str:
        url = f"{self.base_url}/models/{model or self.model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        payload = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

        data = post_json(url, headers=headers, payload=payload)

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError) as e:
            raise LLMError(f"Unexpected Gemini response shape: {data!r:.200}") from e
        return "".join(p.get("text", "") for p in parts)
