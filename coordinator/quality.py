"""Quality gate for downstream service responses.

The assessor is deterministic and total: every payload gets a score in
[0, 1] and at most one reject reason. Rules are checked in a fixed order and
the first match wins:

1. ``no_data``         absent or unparseable response
2. ``empty_data``      empty object, or a payload that is not an object
3. ``empty_results``   a list-valued ``results``/``items``/``data`` field is empty
4. ``only_metadata``   every key is a bookkeeping key (timestamp, status, ...)
5. score from field count: 0 -> 0.0, 1-2 -> 0.3, 3-9 -> 0.7, >=10 -> 1.0
6. ``quality_too_low`` score below the configured minimum

Rules 1-4 report a score of 0.0.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from coordinator.payload import Payload

METADATA_KEYS = frozenset({"timestamp", "status", "message", "success", "error"})
RESULT_LIST_FIELDS = ("results", "items", "data")
DEFAULT_MIN_QUALITY_SCORE = 0.5


class RejectReason(str, Enum):
    NO_DATA = "no_data"
    EMPTY_DATA = "empty_data"
    EMPTY_RESULTS = "empty_results"
    ONLY_METADATA = "only_metadata"
    QUALITY_TOO_LOW = "quality_too_low"
    # Transport failures, recorded on attempts that never reached the gate.
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    PROTOCOL_ERROR = "protocol_error"


@dataclass(frozen=True)
class Assessment:
    score: float
    reject_reason: RejectReason | None = None

    @property
    def accepted(self) -> bool:
        return self.reject_reason is None


def score_from_field_count(count: int) -> float:
    if count <= 0:
        return 0.0
    if count < 3:
        return 0.3
    if count < 10:
        return 0.7
    return 1.0


def assess(payload: Payload | None, min_quality_score: float = DEFAULT_MIN_QUALITY_SCORE) -> Assessment:
    if payload is None or not payload.is_present:
        return Assessment(0.0, RejectReason.NO_DATA)
    if not payload.is_object or payload.is_empty_object():
        return Assessment(0.0, RejectReason.EMPTY_DATA)
    if payload.empty_list_fields(RESULT_LIST_FIELDS):
        return Assessment(0.0, RejectReason.EMPTY_RESULTS)
    if payload.has_only_keys_from(METADATA_KEYS):
        return Assessment(0.0, RejectReason.ONLY_METADATA)
    score = score_from_field_count(payload.field_count())
    if score < min_quality_score:
        return Assessment(score, RejectReason.QUALITY_TOO_LOW)
    return Assessment(score)


class QualityAssessor:
    """Binds the minimum score so callers can pass the gate around."""

    def __init__(self, min_quality_score: float = DEFAULT_MIN_QUALITY_SCORE) -> None:
        self.min_quality_score = min_quality_score

    def assess(self, payload: Payload | None) -> Assessment:
        return assess(payload, self.min_quality_score)
