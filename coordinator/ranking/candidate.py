"""Candidate routing targets."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class Candidate:
    service_name: str
    confidence: float
    rationale: str = ""
    rank: int | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "confidence": self.confidence,
            "rationale": self.rationale,
            "rank": self.rank,
        }


@dataclass(frozen=True)
class RankingOutcome:
    candidates: List[Candidate]
    method: str
    fallback_reason: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "fallback_reason": self.fallback_reason,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
        }
