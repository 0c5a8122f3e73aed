from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from chatmate.errors import LLMAuthError, LLMError, UpstreamTimeout

LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", "30"))


class LLMProvider(ABC):
    @abstractmethod
    def generate(self, *, system: str, user: str, model: Optional[str] = None) -> str:
        """
        Must return the model output as TEXT. Raises LLMError subclasses on failure.
        """
        raise NotImplementedError


def post_json(url: str, *, headers: dict, payload: dict, timeout: float = LLM_TIMEOUT_S) -> dict:
    """POST a JSON body and map transport failures onto the LLMError taxonomy."""
    try:
        with httpx.Client(timeout=timeout) as client:
            r = client.post(url, headers=headers, json=payload)
    except httpx.TimeoutException as e:
        raise UpstreamTimeout(f"LLM request timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise LLMError(f"LLM request failed: {e}") from e

    if r.status_code in (401, 403) or (r.status_code == 400 and "API_KEY" in r.text):
        raise LLMAuthError(f"LLM provider rejected the API key ({r.status_code})")
    if r.is_error:
        raise LLMError(f"LLM provider returned {r.status_code}: {r.text[:200]}")
    return r.json()
