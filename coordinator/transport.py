"""Transport invoker: one call interface over HTTP and JSON-RPC services."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Protocol
import asyncio
import itertools
import logging
import time

import httpx

from coordinator.catalog import ServiceDescriptor
from coordinator.envelope import (
    Envelope,
    EnvelopeRequest,
    envelope_to_json,
    from_transport_response,
    to_wire,
)
from coordinator.payload import Payload

logger = logging.getLogger(__name__)


class ErrorClass(str, Enum):
    NONE = "none"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    PROTOCOL_ERROR = "protocol_error"


class RpcError(Exception):
    """A JSON-RPC error member or a malformed JSON-RPC frame."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class UnsupportedTransportError(Exception):
    pass


@dataclass(frozen=True)
class Invocation:
    envelope: Envelope
    success: bool
    error_class: ErrorClass = ErrorClass.NONE
    error: str | None = None

    @property
    def response(self) -> Payload:
        return self.envelope.response


class Transport(Protocol):
    tag: str

    async def call(self, client: httpx.AsyncClient, service: ServiceDescriptor, request: EnvelopeRequest) -> Any:
        """Send the request and return the raw (undecoded) response."""


class HttpTransport:
    tag = "http"
    path = "/api/process"

    async def call(self, client: httpx.AsyncClient, service: ServiceDescriptor, request: EnvelopeRequest) -> Any:
        envelope = to_wire(request)
        resp = await client.post(
            f"{service.endpoint}{self.path}",
            content=envelope_to_json(envelope),
            headers={
                "Content-Type": "application/json",
                "X-Coordinator-Service": "coordinator",
                "X-Target-Service": service.name,
                "X-Protocol": self.tag,
                "X-Request-ID": request.request_id,
            },
        )
        resp.raise_for_status()
        return resp.text


class RpcTransport:
    """JSON-RPC 2.0 over HTTP; the envelope travels as a JSON string."""

    tag = "rpc"
    path = "/rpc"
    method = "Process"

    def __init__(self) -> None:
        self._ids = itertools.count(1)

    async def call(self, client: httpx.AsyncClient, service: ServiceDescriptor, request: EnvelopeRequest) -> Any:
        request_id = next(self._ids)
        frame = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": self.method,
            "params": {"envelope_json": envelope_to_json(to_wire(request))},
        }
        resp = await client.post(
            f"{service.endpoint}{self.path}",
            json=frame,
            headers={"X-Request-ID": request.request_id, "X-Target-Service": service.name},
        )
        resp.raise_for_status()
        try:
            response = resp.json()
        except ValueError as exc:
            raise RpcError(f"Invalid JSON-RPC response: {exc}") from exc
        if not isinstance(response, dict) or response.get("jsonrpc") != "2.0":
            raise RpcError("Malformed JSON-RPC response frame")
        if response.get("error") is not None:
            error = response["error"] if isinstance(response["error"], dict) else {}
            raise RpcError(error.get("message", str(response["error"])), error.get("code"))
        if "result" not in response:
            raise RpcError("JSON-RPC response has neither result nor error")
        return response.get("result")


def classify(exc: BaseException) -> ErrorClass:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorClass.TIMEOUT
    if isinstance(exc, (httpx.ProtocolError, httpx.UnsupportedProtocol, httpx.DecodingError, httpx.HTTPStatusError)):
        return ErrorClass.PROTOCOL_ERROR
    if isinstance(exc, (RpcError, UnsupportedTransportError)):
        return ErrorClass.PROTOCOL_ERROR
    if isinstance(exc, httpx.TransportError):
        return ErrorClass.UNREACHABLE
    return ErrorClass.PROTOCOL_ERROR


def _describe(exc: BaseException, timeout: float) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return f"Service call timeout after {timeout * 1000:.0f}ms"
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}: {exc.response.reason_phrase}"
    return str(exc) or type(exc).__name__


class TransportInvoker:
    """Invokes a service over the transport its catalog entry advertises.

    ``http_transport`` is handed to ``httpx.AsyncClient`` and exists so tests
    can plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        transports: Dict[str, Transport] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.transports: Dict[str, Transport] = transports or {
            HttpTransport.tag: HttpTransport(),
            RpcTransport.tag: RpcTransport(),
        }
        self.http_transport = http_transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.http_transport)

    def transport_for(self, service: ServiceDescriptor) -> Transport:
        transport = self.transports.get(service.transport)
        if transport is None:
            raise UnsupportedTransportError(f"Unsupported transport '{service.transport}'")
        return transport

    async def invoke(self, service: ServiceDescriptor, request: EnvelopeRequest, deadline: float) -> Invocation:
        """Call ``service`` and return before the monotonic ``deadline``."""
        start = time.monotonic()
        remaining = deadline - start

        def _failed(error_class: ErrorClass, error: str) -> Invocation:
            latency = (time.monotonic() - start) * 1000
            envelope = Envelope(request, Payload.absent(), service.transport, latency)
            return Invocation(envelope, False, error_class, error)

        try:
            transport = self.transport_for(service)
        except UnsupportedTransportError as exc:
            return _failed(classify(exc), str(exc))
        if remaining <= 0:
            return _failed(ErrorClass.TIMEOUT, "Deadline expired before call started")

        try:
            async with self._client(remaining) as client:
                raw = await asyncio.wait_for(transport.call(client, service, request), timeout=remaining)
        except Exception as exc:
            error_class = classify(exc)
            if error_class is ErrorClass.PROTOCOL_ERROR and not isinstance(
                exc, (httpx.HTTPError, RpcError)
            ):
                logger.warning(f"Unexpected error calling {service.name}", exc_info=True)
            return _failed(error_class, _describe(exc, remaining))

        latency = (time.monotonic() - start) * 1000
        response = from_transport_response(transport.tag, raw)
        return Invocation(Envelope(request, response, transport.tag, latency), True)

    async def probe(self, service: ServiceDescriptor, timeout: float = 2.0) -> Dict[str, Any]:
        """Send a health-check envelope over the service's transport."""
        request = EnvelopeRequest(
            query="health-check",
            tenant_id="health-check",
            user_id="coordinator",
            context={"purpose": "connectivity-test", "protocol": service.transport},
        )
        result = await self.invoke(service, request, time.monotonic() + timeout)
        return {
            "service": service.name,
            "transport": service.transport,
            "ok": result.success,
            "error_class": result.error_class.value,
            "error": result.error,
            "latency_ms": round(result.envelope.latency_ms, 1),
        }
