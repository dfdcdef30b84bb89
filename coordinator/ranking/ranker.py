"""Candidate ranker: external provider first, keyword overlap as fallback."""
from __future__ import annotations

from typing import Any, Dict, List, Sequence
import logging
import math

import httpx

from coordinator.catalog import ServiceDescriptor
from coordinator.ranking.candidate import Candidate, RankingOutcome
from coordinator.ranking.keyword import keyword_rank
from coordinator.ranking.provider import RankingProvider, RankingProviderError, provider_from_config

logger = logging.getLogger(__name__)

METHOD_PROVIDER = "provider"
METHOD_FALLBACK = "fallback"


class CandidateRanker:
    def __init__(
        self,
        provider: RankingProvider | None = None,
        min_confidence: float = 0.3,
        max_candidates: int = 10,
        provider_timeout: float = 5.0,
        include_unmatched: bool = False,
    ) -> None:
        self.provider = provider
        self.min_confidence = min_confidence
        self.max_candidates = max_candidates
        self.provider_timeout = provider_timeout
        self.include_unmatched = include_unmatched

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CandidateRanker":
        return cls(
            provider=provider_from_config(config),
            min_confidence=float(config.get("min_confidence", 0.3)),
            max_candidates=int(config.get("max_candidates", 10)),
            provider_timeout=float(config.get("timeout_seconds", 5.0)),
            include_unmatched=bool(config.get("include_unmatched", False)),
        )

    def rank(self, query: str, services: Sequence[ServiceDescriptor]) -> RankingOutcome:
        """Never raises for provider trouble; the keyword path always answers."""
        if self.provider is None:
            return self._fallback(query, services, "provider disabled")
        try:
            suggestions = self.provider.rank(query, services, self.provider_timeout)
        except (RankingProviderError, httpx.HTTPError, TimeoutError) as exc:
            logger.warning(f"Ranking provider {self.provider.name} failed, falling back to keyword matching: {exc}")
            return self._fallback(query, services, f"provider error: {exc}")
        except Exception as exc:
            logger.warning(f"Ranking provider {self.provider.name} raised unexpectedly", exc_info=True)
            return self._fallback(query, services, f"provider error: {exc}")
        candidates = self._filter(suggestions, services)
        if not candidates:
            logger.warning(f"Ranking provider {self.provider.name} returned no usable candidates")
            return self._fallback(query, services, "provider returned no candidates")
        return RankingOutcome(candidates, METHOD_PROVIDER)

    def _filter(self, suggestions: List[Dict[str, Any]], services: Sequence[ServiceDescriptor]) -> List[Candidate]:
        known = {service.name for service in services}
        seen = set()
        candidates = []
        if not isinstance(suggestions, (list, tuple)):
            logger.warning(f"Ranking provider returned {type(suggestions).__name__}, expected a list")
            return []
        for item in suggestions:
            if not isinstance(item, dict):
                logger.warning(f"Ignoring malformed ranking suggestion: {item!r}")
                continue
            name = item.get("service_name")
            if not isinstance(name, str) or name not in known:
                logger.warning(f"Ranking provider suggested unknown service: {name}")
                continue
            if name in seen:
                continue
            try:
                confidence = float(item.get("confidence", 0.0))
            except (TypeError, ValueError):
                logger.warning(f"Ignoring suggestion for {name} with bad confidence: {item.get('confidence')!r}")
                continue
            if not math.isfinite(confidence):
                logger.warning(f"Ignoring suggestion for {name} with non-finite confidence")
                continue
            seen.add(name)
            confidence = max(0.0, min(1.0, confidence))
            if confidence <= self.min_confidence:
                continue
            candidates.append(Candidate(name, confidence, str(item.get("rationale") or "")))
        candidates.sort(key=lambda candidate: candidate.confidence, reverse=True)
        return candidates[: self.max_candidates]

    def _fallback(self, query: str, services: Sequence[ServiceDescriptor], reason: str) -> RankingOutcome:
        candidates = keyword_rank(
            query,
            services,
            limit=self.max_candidates,
            include_unmatched=self.include_unmatched,
        )
        logger.info(f"Keyword ranking produced {len(candidates)} candidate(s) ({reason})")
        return RankingOutcome(candidates, METHOD_FALLBACK, reason)
