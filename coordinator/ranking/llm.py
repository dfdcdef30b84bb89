"""Common result type for the LLM backends."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol


@dataclass
class LLMResult:
    text: str = ""
    duration_ms: float = 0.0
    ok: bool = True
    error: Optional[str] = None
    timed_out: bool = False
    usage: Dict[str, Any] | None = None


class LLMClient(Protocol):
    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.1,
        timeout: float = 5.0,
    ) -> LLMResult:
        ...
