"""Ollama chat client used as a ranking backend."""
from __future__ import annotations

from typing import Any, Dict, Optional
import time

import httpx

from coordinator.ranking.llm import LLMResult


class OllamaClient:
    def __init__(self, base_url: str = "http://localhost:11434", model: str = "qwen2.5:7b") -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.1,
        timeout: float = 5.0,
    ) -> LLMResult:
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": temperature,
            },
        }
        if system:
            payload["system"] = system

        start = time.perf_counter()
        try:
            with httpx.Client(timeout=timeout) as client:
                resp = client.post(f"{self.base_url}/api/generate", json=payload)
                resp.raise_for_status()
                data = resp.json()
                duration = (time.perf_counter() - start) * 1000
                return LLMResult(text=data.get("response", ""), duration_ms=duration, ok=True)
        except httpx.TimeoutException:
            duration = (time.perf_counter() - start) * 1000
            return LLMResult(text="", duration_ms=duration, ok=False, error=f"Ollama timeout after {timeout}s", timed_out=True)
        except (httpx.HTTPError, ValueError) as exc:
            duration = (time.perf_counter() - start) * 1000
            return LLMResult(text="", duration_ms=duration, ok=False, error=str(exc))
