"""FastAPI front doors: REST ``/route`` and JSON-RPC ``/rpc``.

Both decode their own wire format into an ``EnvelopeRequest`` and call the
same ``CoordinatorService.route``; the cascade dict they return is identical.
"""
from __future__ import annotations

from typing import Any, Dict
import json
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from coordinator.config import get_config
from coordinator.dispatcher import FOUND_GOOD_RESPONSE
from coordinator.envelope import EnvelopeRequest, to_envelope_request
from coordinator.service import CoordinatorService

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602

app = FastAPI(title="Coordinator")


@app.on_event("startup")
def _startup() -> None:
    if getattr(app.state, "service", None) is not None:
        return
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app.state.config = config
    app.state.service = CoordinatorService.from_config(config)


def _service(request: Request) -> CoordinatorService:
    return request.app.state.service


async def _route(request: Request, envelope_request: EnvelopeRequest) -> Dict[str, Any]:
    outcome = await _service(request).route(envelope_request)
    return outcome.to_dict()


def _render(result: Dict[str, Any]) -> JSONResponse:
    status = 200 if result.get("stop_reason") == FOUND_GOOD_RESPONSE else 502
    return JSONResponse(result, status_code=status)


@app.get("/health")
async def health():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "service": "coordinator"}


@app.get("/api/services")
async def services_api(request: Request):
    return {"services": [s.to_dict() for s in _service(request).catalog.list_all()]}


@app.get("/api/services/health")
async def services_health_api(request: Request):
    return {"services": await _service(request).health()}


@app.get("/route/context")
async def routing_context_api(request: Request):
    return _service(request).routing_context()


@app.post("/route")
async def route_api(payload: dict, request: Request):
    envelope_request = to_envelope_request("http", payload)
    if not envelope_request.query:
        return JSONResponse(
            {"success": False, "message": 'Either "query" or "intent" is required'},
            status_code=400,
        )
    return _render(await _route(request, envelope_request))


@app.get("/route")
async def route_get_api(request: Request, q: str = "", query: str = "", intent: str = ""):
    text = (q or query or intent).strip()
    if not text:
        return JSONResponse(
            {"success": False, "message": 'Query parameter "q", "query", or "intent" is required'},
            status_code=400,
        )
    return _render(await _route(request, to_envelope_request("http", {"query": text})))


def _rpc_error(request_id: Any, code: int, message: str) -> JSONResponse:
    return JSONResponse({"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}})


@app.post("/rpc")
async def rpc_api(request: Request):
    try:
        frame = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _rpc_error(None, PARSE_ERROR, "Parse error")
    if not isinstance(frame, dict) or frame.get("jsonrpc") != "2.0" or not isinstance(frame.get("method"), str):
        return _rpc_error(frame.get("id") if isinstance(frame, dict) else None, INVALID_REQUEST, "Invalid Request")
    request_id = frame.get("id")
    if frame["method"] != "Route":
        return _rpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {frame['method']}")
    params = frame.get("params")
    if not isinstance(params, dict):
        return _rpc_error(request_id, INVALID_PARAMS, "params must be an object")
    envelope_request = to_envelope_request("rpc", params)
    if not envelope_request.query:
        return _rpc_error(request_id, INVALID_PARAMS, "query_text is required")
    result = await _route(request, envelope_request)
    return JSONResponse({"jsonrpc": "2.0", "id": request_id, "result": result})


def main():
    import uvicorn
    config = get_config()
    host = config.server.get("host", "127.0.0.1")
    port = int(config.server.get("port", 8099))
    uvicorn.run("coordinator.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
