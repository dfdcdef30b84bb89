"""Coordinator service: rank, then cascade. Shared by every front door."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
import asyncio
import logging

from coordinator.catalog import ServiceCatalog
from coordinator.config import Config
from coordinator.dispatcher import CascadeResult, CascadingDispatcher
from coordinator.envelope import EnvelopeRequest
from coordinator.ranking import CandidateRanker, RankingOutcome
from coordinator.transport import TransportInvoker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteOutcome:
    request: EnvelopeRequest
    ranking: RankingOutcome
    cascade: CascadeResult

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "request_id": self.request.request_id,
            "query": self.request.query,
            "ranking": self.ranking.to_dict(),
        }
        payload.update(self.cascade.to_dict())
        return payload


class CoordinatorService:
    def __init__(
        self,
        catalog: ServiceCatalog,
        ranker: CandidateRanker,
        dispatcher: CascadingDispatcher,
    ) -> None:
        self.catalog = catalog
        self.ranker = ranker
        self.dispatcher = dispatcher

    @classmethod
    def from_config(cls, config: Config, invoker: TransportInvoker | None = None) -> "CoordinatorService":
        settings = config.cascade
        return cls(
            catalog=ServiceCatalog.from_config(config.services),
            ranker=CandidateRanker.from_config(config.ranking),
            dispatcher=CascadingDispatcher(invoker or TransportInvoker(), settings),
        )

    async def route(self, request: EnvelopeRequest, deadline: Optional[float] = None) -> RouteOutcome:
        snapshot = self.catalog.snapshot()
        ranking = await asyncio.to_thread(self.ranker.rank, request.query, snapshot.list_all())
        logger.info(
            f"Ranked {len(ranking.candidates)} candidate(s) via {ranking.method} "
            f"for request_id={request.request_id}"
        )
        cascade = await self.dispatcher.dispatch(request, ranking.candidates, snapshot, deadline=deadline)
        return RouteOutcome(request, ranking, cascade)

    def rank(self, query: str) -> RankingOutcome:
        return self.ranker.rank(query, self.catalog.list_all())

    def routing_context(self) -> Dict[str, Any]:
        settings = self.dispatcher.settings
        services = self.catalog.list_all()
        return {
            "ranking_provider": self.ranker.provider.name if self.ranker.provider else None,
            "fallback_enabled": True,
            "active_services": len(services),
            "cascade": {
                "max_fallback_attempts": settings.max_fallback_attempts,
                "min_quality_score": settings.min_quality_score,
                "stop_on_first_success": settings.stop_on_first_success,
                "attempt_timeout_ms": settings.attempt_timeout_ms,
            },
            "services": [
                {"name": s.name, "transport": s.transport, "capabilities": list(s.capabilities)}
                for s in services
            ],
        }

    async def health(self, timeout: float = 2.0) -> list[Dict[str, Any]]:
        invoker = self.dispatcher.invoker
        results = []
        for service in self.catalog.list_all():
            if isinstance(invoker, TransportInvoker):
                results.append(await invoker.probe(service, timeout=timeout))
        return results
