"""External ranking providers.

A provider turns ``(query, catalog snapshot)`` into raw suggestions
``[{"service_name", "confidence", "rationale"}]`` or raises
``RankingProviderError``. The ranker owns filtering, ordering and fallback.
"""
from __future__ import annotations

from typing import Any, Dict, List, Protocol, Sequence
import json
import logging
import math

from coordinator.catalog import ServiceDescriptor
from coordinator.ranking.llm import LLMClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a microservices router. Analyze requests and determine the best "
    "service(s) to handle them. Always respond with valid JSON."
)

ROUTING_PROMPT = """Analyze the following request and decide which service(s) should handle it.

Request: {query}

Available services:
{services}

Instructions:
1. Match the request against each service's capabilities and description
2. Return every relevant service ranked by confidence, at most {limit}
3. Confidence is a number between 0 and 1
4. Include a short rationale for each service

Reply as JSON only:
{{"targetServices": [{{"serviceName": "name", "confidence": 0.95, "reasoning": "why"}}]}}"""


class RankingProviderError(RuntimeError):
    def __init__(self, message: str, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class RankingProvider(Protocol):
    name: str

    def rank(self, query: str, services: Sequence[ServiceDescriptor], timeout: float) -> List[Dict[str, Any]]:
        ...


def build_prompt(query: str, services: Sequence[ServiceDescriptor], limit: int = 10) -> str:
    lines = []
    for service in services:
        caps = ", ".join(service.capabilities) or "none specified"
        lines.append(
            f"- {service.name}:\n"
            f"  Capabilities: {caps}\n"
            f"  Description: {service.description or 'No description'}"
        )
    return ROUTING_PROMPT.format(query=query, services="\n".join(lines), limit=limit)


def parse_json_payload(text: str) -> Dict[str, Any] | None:
    if not text:
        return None
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    try:
        parsed = json.loads(cleaned)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_suggestions(text: str) -> List[Dict[str, Any]]:
    parsed = parse_json_payload(text)
    if parsed is None:
        raise RankingProviderError("Ranking response is not valid JSON")
    targets = parsed.get("targetServices")
    if not isinstance(targets, list):
        raise RankingProviderError("Ranking response: targetServices must be an array")
    suggestions = []
    for target in targets:
        if not isinstance(target, dict) or not target.get("serviceName"):
            continue
        try:
            confidence = float(target.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5
        if not math.isfinite(confidence):
            logger.warning(f"Dropping suggestion for {target['serviceName']} with non-finite confidence")
            continue
        suggestions.append({
            "service_name": str(target["serviceName"]),
            "confidence": confidence,
            "rationale": str(target.get("reasoning") or "AI recommendation"),
        })
    return suggestions


class LLMRankingProvider:
    """Ranks services by asking an LLM backend (Ollama or Gemini)."""

    def __init__(self, client: LLMClient, name: str = "llm", limit: int = 10) -> None:
        self.client = client
        self.name = name
        self.limit = limit

    def rank(self, query: str, services: Sequence[ServiceDescriptor], timeout: float) -> List[Dict[str, Any]]:
        prompt = build_prompt(query, services, self.limit)
        result = self.client.generate(prompt, system=SYSTEM_PROMPT, temperature=0.1, timeout=timeout)
        if not result.ok:
            raise RankingProviderError(result.error or "ranking provider failed", timed_out=result.timed_out)
        logger.debug(f"{self.name} ranking answered in {result.duration_ms:.0f}ms")
        return parse_suggestions(result.text)


def provider_from_config(config: Dict[str, Any]) -> RankingProvider | None:
    """Build the configured provider, or None for keyword-only ranking."""
    kind = str(config.get("provider", "none") or "none").lower()
    limit = int(config.get("max_candidates", 10))
    if kind == "ollama":
        from coordinator.ranking.ollama import OllamaClient

        client = OllamaClient(
            base_url=config.get("base_url", "http://localhost:11434"),
            model=config.get("model", "qwen2.5:7b"),
        )
        return LLMRankingProvider(client, name="ollama", limit=limit)
    if kind == "gemini":
        from coordinator.ranking.gemini import GeminiClient

        client = GeminiClient(api_key=config.get("api_key"), model=config.get("model", "2.5-flash"))
        return LLMRankingProvider(client, name="gemini", limit=limit)
    if kind not in ("none", "", "keyword"):
        logger.warning(f"Unknown ranking provider '{kind}', using keyword ranking only")
    return None
