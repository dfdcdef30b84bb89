"""Cascading fallback dispatcher.

Tries ranked candidates one at a time over their advertised transport, runs
each response through the quality gate, and stops on the first accepted
response (or keeps going when ``stop_on_first_success`` is off). Every
attempt is recorded; transport failures and quality rejections are outcomes,
not exceptions, so callers always get a complete ``CascadeResult``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Protocol, Sequence
import logging
import time

from coordinator.catalog import CatalogSnapshot, ServiceDescriptor
from coordinator.config import CascadeSettings
from coordinator.envelope import EnvelopeRequest
from coordinator.payload import Payload
from coordinator.quality import QualityAssessor, RejectReason
from coordinator.ranking.candidate import Candidate
from coordinator.transport import ErrorClass, Invocation

logger = logging.getLogger(__name__)

FOUND_GOOD_RESPONSE = "found-good-response"
EXHAUSTED_CANDIDATES = "exhausted-candidates"

_ERROR_REASONS = {
    ErrorClass.TIMEOUT: RejectReason.TIMEOUT,
    ErrorClass.UNREACHABLE: RejectReason.UNREACHABLE,
    ErrorClass.PROTOCOL_ERROR: RejectReason.PROTOCOL_ERROR,
}


class Invoker(Protocol):
    async def invoke(self, service: ServiceDescriptor, request: EnvelopeRequest, deadline: float) -> Invocation:
        ...


@dataclass(frozen=True)
class Attempt:
    rank: int
    service_name: str
    success: bool
    confidence: float = 0.0
    quality_score: float | None = None
    reject_reason: RejectReason | None = None
    error_class: ErrorClass = ErrorClass.NONE
    error: str | None = None
    transport: str | None = None
    latency_ms: float = 0.0
    response: Payload = field(default_factory=Payload.absent, compare=False, repr=False)

    @property
    def accepted(self) -> bool:
        return self.success and self.reject_reason is None

    def to_dict(self, include_data: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "rank": self.rank,
            "service_name": self.service_name,
            "confidence": self.confidence,
            "success": self.success,
            "quality_score": self.quality_score,
            "reject_reason": self.reject_reason.value if self.reject_reason else None,
            "error_class": self.error_class.value,
            "error": self.error,
            "transport": self.transport,
            "latency_ms": round(self.latency_ms, 1),
        }
        if include_data:
            payload["data"] = self.response.to_json()
        return payload


@dataclass(frozen=True)
class CascadeResult:
    attempts: List[Attempt]
    stop_reason: str
    successful_attempt: Attempt | None = None
    total_elapsed_ms: float = 0.0
    truncated: bool = False

    @property
    def total_attempts(self) -> int:
        return len(self.attempts)

    @property
    def successful_rank(self) -> int | None:
        return self.successful_attempt.rank if self.successful_attempt else None

    @property
    def attempts_before_success(self) -> int | None:
        """Attempts made up to and including the accepted one."""
        if self.successful_attempt is None:
            return None
        return self.attempts.index(self.successful_attempt) + 1

    @property
    def primary_success(self) -> bool:
        return self.successful_rank == 1

    @property
    def fallback_rank(self) -> int | None:
        rank = self.successful_rank
        return rank if rank is not None and rank > 1 else None

    def to_dict(self) -> Dict[str, Any]:
        successful = self.successful_attempt
        return {
            "success": successful is not None,
            "stop_reason": self.stop_reason,
            "successful_attempt": successful.to_dict(include_data=True) if successful else None,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "total_attempts": self.total_attempts,
            "total_elapsed_ms": round(self.total_elapsed_ms, 1),
            "truncated": self.truncated,
            "observability": {
                "successful_rank": self.successful_rank,
                "attempts_before_success": self.attempts_before_success,
                "primary_success": self.primary_success,
                "fallback_rank": self.fallback_rank,
            },
        }


class CascadingDispatcher:
    def __init__(self, invoker: Invoker, settings: CascadeSettings | None = None) -> None:
        self.invoker = invoker
        self.settings = settings or CascadeSettings()
        self.assessor = QualityAssessor(self.settings.min_quality_score)

    async def dispatch(
        self,
        request: EnvelopeRequest,
        candidates: Sequence[Candidate],
        catalog: CatalogSnapshot,
        deadline: Optional[float] = None,
    ) -> CascadeResult:
        """Run the cascade for one request.

        ``deadline`` is an optional outer limit on ``time.monotonic()``; when
        it passes, the cascade stops and summarizes what it has so far.
        """
        settings = self.settings
        start = time.monotonic()
        attempts: List[Attempt] = []
        successful: Attempt | None = None
        truncated = False

        logger.info(
            f"Starting cascade request_id={request.request_id} candidates={len(candidates)} "
            f"max_attempts={settings.max_fallback_attempts} min_quality={settings.min_quality_score} "
            f"stop_on_first={settings.stop_on_first_success}"
        )

        for rank, candidate in enumerate(candidates, start=1):
            if rank > settings.max_fallback_attempts:
                break
            now = time.monotonic()
            if deadline is not None and now >= deadline:
                logger.warning(f"Outer deadline reached before rank {rank}; stopping cascade")
                truncated = True
                break
            attempt_deadline = now + settings.attempt_timeout
            if deadline is not None:
                attempt_deadline = min(attempt_deadline, deadline)

            attempt = await self._attempt(rank, replace(candidate, rank=rank), request, catalog, attempt_deadline)
            attempts.append(attempt)

            if attempt.accepted:
                logger.info(f"Good response at rank {rank}: {attempt.service_name} quality={attempt.quality_score}")
                if successful is None:
                    successful = attempt
                if settings.stop_on_first_success:
                    break

        elapsed = (time.monotonic() - start) * 1000
        result = CascadeResult(
            attempts=attempts,
            stop_reason=FOUND_GOOD_RESPONSE if successful else EXHAUSTED_CANDIDATES,
            successful_attempt=successful,
            total_elapsed_ms=elapsed,
            truncated=truncated,
        )
        logger.info(
            f"Cascade completed request_id={request.request_id} stop_reason={result.stop_reason} "
            f"successful_rank={result.successful_rank} attempts={result.total_attempts} "
            f"elapsed={elapsed:.0f}ms"
        )
        return result

    async def _attempt(
        self,
        rank: int,
        candidate: Candidate,
        request: EnvelopeRequest,
        catalog: CatalogSnapshot,
        deadline: float,
    ) -> Attempt:
        service = catalog.lookup(candidate.service_name)
        if service is None:
            logger.warning(f"Rank {rank}: {candidate.service_name} is not in the catalog")
            return Attempt(
                rank=rank,
                service_name=candidate.service_name,
                success=False,
                confidence=candidate.confidence,
                reject_reason=RejectReason.UNREACHABLE,
                error_class=ErrorClass.UNREACHABLE,
                error="Service not found in catalog",
            )

        logger.info(
            f"Trying rank {rank}: {service.name} (confidence: {candidate.confidence}) via {service.transport}"
        )
        started = time.monotonic()
        try:
            invocation = await self.invoker.invoke(service, request, deadline)
        except Exception as exc:
            logger.error(f"Invocation of {service.name} raised", exc_info=True)
            return Attempt(
                rank=rank,
                service_name=service.name,
                success=False,
                confidence=candidate.confidence,
                reject_reason=RejectReason.PROTOCOL_ERROR,
                error_class=ErrorClass.PROTOCOL_ERROR,
                error=str(exc) or type(exc).__name__,
                transport=service.transport,
                latency_ms=(time.monotonic() - started) * 1000,
            )

        latency = invocation.envelope.latency_ms
        if not invocation.success:
            logger.warning(
                f"Service call failed at rank {rank}: {service.name} "
                f"{invocation.error_class.value}: {invocation.error}, trying next"
            )
            return Attempt(
                rank=rank,
                service_name=service.name,
                success=False,
                confidence=candidate.confidence,
                reject_reason=_ERROR_REASONS.get(invocation.error_class, RejectReason.PROTOCOL_ERROR),
                error_class=invocation.error_class,
                error=invocation.error,
                transport=invocation.envelope.transport_used,
                latency_ms=latency,
            )

        assessment = self.assessor.assess(invocation.response)
        if not assessment.accepted:
            logger.info(
                f"Response not good enough at rank {rank}: {service.name} "
                f"{assessment.reject_reason.value} (quality {assessment.score}), trying next"
            )
        return Attempt(
            rank=rank,
            service_name=service.name,
            success=True,
            confidence=candidate.confidence,
            quality_score=assessment.score,
            reject_reason=assessment.reject_reason,
            transport=invocation.envelope.transport_used,
            latency_ms=latency,
            response=invocation.response,
        )
