"""Gemini API client used as a ranking backend."""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

import httpx

from coordinator.ranking.llm import LLMResult

logger = logging.getLogger(__name__)


class GeminiClient:
    """Gemini generateContent client using httpx."""

    MODEL_MAP = {
        "2.5-flash": "gemini-2.5-flash",
        "2.5-pro": "gemini-2.5-pro",
        "2.0-flash": "gemini-2.0-flash",
    }

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
    ) -> None:
        self.api_key = api_key if api_key is not None else os.environ.get("GEMINI_API_KEY", "")
        self.model = model
        self.base_url = base_url.rstrip("/")

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.1,
        timeout: float = 5.0,
    ) -> LLMResult:
        if not self.api_key:
            return LLMResult(ok=False, error="GEMINI_API_KEY not set")

        model_id = self.MODEL_MAP.get(self.model, self.model)
        url = f"{self.base_url}/models/{model_id}:generateContent"

        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "responseMimeType": "application/json",
            },
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        start = time.perf_counter()
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(url, json=body, headers={"x-goog-api-key": self.api_key})

            duration_ms = (time.perf_counter() - start) * 1000

            if response.status_code != 200:
                return LLMResult(
                    ok=False,
                    error=f"HTTP {response.status_code}: {response.text[:500]}",
                    duration_ms=duration_ms,
                )

            data = response.json()
            candidates = data.get("candidates", [])
            if not candidates:
                return LLMResult(ok=False, error="No candidates in response", duration_ms=duration_ms)

            parts = candidates[0].get("content", {}).get("parts", [])
            usage_meta = data.get("usageMetadata", {})
            return LLMResult(
                text="".join(p.get("text", "") for p in parts),
                ok=True,
                duration_ms=duration_ms,
                usage={
                    "prompt_tokens": usage_meta.get("promptTokenCount", 0),
                    "completion_tokens": usage_meta.get("candidatesTokenCount", 0),
                    "total_tokens": usage_meta.get("totalTokenCount", 0),
                },
            )

        except httpx.TimeoutException:
            return LLMResult(
                ok=False,
                error=f"Gemini API timeout after {timeout}s",
                duration_ms=(time.perf_counter() - start) * 1000,
                timed_out=True,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Gemini request failed: {e}")
            return LLMResult(
                ok=False,
                error=str(e),
                duration_ms=(time.perf_counter() - start) * 1000,
            )
