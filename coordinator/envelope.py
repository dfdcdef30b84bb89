"""Universal envelope: one request/response shape for every transport."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping
import json
import logging
import uuid

from coordinator.payload import Payload

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = "1.0"
ENVELOPE_SOURCE = "coordinator"
DEFAULT_TENANT = "default"
DEFAULT_USER = "anonymous"


def _frozen(mapping: Any) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping) if isinstance(mapping, dict) else {})


@dataclass(frozen=True)
class EnvelopeRequest:
    query: str
    tenant_id: str = DEFAULT_TENANT
    user_id: str = DEFAULT_USER
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    context: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def protocol(self) -> str:
        return str(self.context.get("protocol", ""))


@dataclass(frozen=True)
class Envelope:
    request: EnvelopeRequest
    response: Payload
    transport_used: str
    latency_ms: float = 0.0


def _str_or(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _http_query(raw: Dict[str, Any]) -> str:
    for key in ("query", "intent"):
        if isinstance(raw.get(key), str) and raw[key].strip():
            return raw[key].strip()
    payload = raw.get("payload")
    if isinstance(payload, dict):
        for key in ("query_text", "query"):
            if isinstance(payload.get(key), str) and payload[key].strip():
                return payload[key].strip()
    if isinstance(payload, str):
        return payload.strip()
    return ""


def _rpc_query(raw: Dict[str, Any]) -> str:
    for key in ("query_text", "query"):
        if isinstance(raw.get(key), str) and raw[key].strip():
            return raw[key].strip()
    return ""


def to_envelope_request(transport_tag: str, raw_request: Any) -> EnvelopeRequest:
    """Build the canonical request from a front door's decoded body.

    Never raises; a body with no usable query yields an empty ``query`` and
    the front door decides how to reject it.
    """
    raw = raw_request if isinstance(raw_request, dict) else {}
    tag = (transport_tag or "").lower()
    query = _rpc_query(raw) if tag == "rpc" else _http_query(raw)
    metadata = raw.get("metadata")
    if metadata is None and isinstance(raw.get("payload"), dict):
        metadata = raw["payload"].get("metadata")
    kwargs: Dict[str, Any] = {}
    if raw.get("request_id"):
        kwargs["request_id"] = str(raw["request_id"])
    return EnvelopeRequest(
        query=query,
        tenant_id=_str_or(raw.get("tenant_id"), DEFAULT_TENANT),
        user_id=_str_or(raw.get("user_id"), DEFAULT_USER),
        metadata=_frozen(metadata),
        context=_frozen({"protocol": tag or "http", "source": "rpc" if tag == "rpc" else "rest"}),
        **kwargs,
    )


def to_wire(request: EnvelopeRequest) -> Dict[str, Any]:
    """Universal envelope as sent to downstream services."""
    return {
        "version": ENVELOPE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request.request_id,
        "tenant_id": request.tenant_id,
        "user_id": request.user_id,
        "source": ENVELOPE_SOURCE,
        "payload": {
            "query": request.query,
            "metadata": dict(request.metadata),
            "context": dict(request.context),
        },
    }


def _unwrap(payload: Payload) -> Payload:
    # Services commonly answer {"success": true, "data": {...}}.
    if payload.is_object and isinstance(payload.value.get("data"), dict) and "envelope" not in payload.value:
        return Payload.of(payload.value["data"])
    return payload


def from_transport_response(transport_tag: str, raw_response: Any) -> Payload:
    """Decode a transport's raw response into a payload. Never raises."""
    tag = (transport_tag or "").lower()
    if raw_response is None:
        return Payload.absent()
    if tag == "rpc":
        if isinstance(raw_response, dict) and "envelope_json" in raw_response:
            inner = raw_response.get("envelope_json")
            if not isinstance(inner, (str, bytes)):
                return Payload.unparseable(inner)
            return _unwrap(Payload.parse(inner))
        if isinstance(raw_response, (str, bytes)):
            return _unwrap(Payload.parse(raw_response))
        return _unwrap(Payload.of(raw_response))
    if isinstance(raw_response, (str, bytes)):
        return _unwrap(Payload.parse(raw_response))
    if isinstance(raw_response, (dict, list)):
        return _unwrap(Payload.of(raw_response))
    logger.debug(f"Unrecognized {tag or 'unknown'} response type: {type(raw_response).__name__}")
    return Payload.unparseable(raw_response)


def envelope_to_json(envelope: Dict[str, Any]) -> str:
    return json.dumps(envelope, separators=(",", ":"), default=str)
