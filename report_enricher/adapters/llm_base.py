from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Protocol


@dataclass
class GenerationOptions:
    max_tokens: int = 500
    temperature: float = 0.3
    top_p: float = 0.95
    timeout_seconds: float = 15.0


@dataclass
class LLMResponse:
    raw_text: str
    model: str
    usage: Optional[Dict[str, Optional[int]]] = None


class LLMAdapter(Protocol):
    name: str

    def complete(self, prompt: str, model: str, options: GenerationOptions) -> LLMResponse:
        raise NotImplementedError


TRANSIENT_MARKERS = ("503", "unavailable", "429", "too many", "timeout", "timed out", "temporarily")


def is_transient(err: Exception) -> bool:
    msg = str(err).lower()
    return any(marker in msg for marker in TRANSIENT_MARKERS)
