#!/usr/bin/env python3
"""
Mock downstream services for trying the cascade locally.

Run:
    python examples/mock_services.py --port 4001 --behavior empty
    python examples/mock_services.py --port 4002 --behavior good

Each instance answers both transports: POST /api/process (http) and
POST /rpc (JSON-RPC "Process"). Behaviors mirror the quality gate:
good, empty, metadata, sparse, slow, error.
"""
from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

BEHAVIOR = {"name": "good"}

app = FastAPI(title="mock-service")


async def _answer(query: str) -> tuple[int, dict]:
    behavior = BEHAVIOR["name"]
    now = datetime.now(timezone.utc).isoformat()
    if behavior == "slow":
        await asyncio.sleep(10)
    if behavior == "error":
        return 500, {"success": False, "error": "internal failure"}
    if behavior == "empty":
        return 200, {"success": True, "data": {}}
    if behavior == "metadata":
        return 200, {"timestamp": now, "status": "ok"}
    if behavior == "sparse":
        return 200, {"success": True, "data": {"answer": query, "source": "mock"}}
    return 200, {
        "success": True,
        "data": {
            "answer": f"Mock answer for: {query}",
            "source": "mock",
            "confidence": 0.9,
            "items": [{"id": 1}, {"id": 2}],
            "generated_at": now,
        },
    }


@app.post("/api/process")
async def process(request: Request):
    envelope = await request.json()
    status, body = await _answer(envelope.get("payload", {}).get("query", ""))
    return JSONResponse(body, status_code=status)


@app.post("/rpc")
async def rpc(request: Request):
    frame = await request.json()
    envelope = json.loads(frame.get("params", {}).get("envelope_json", "{}"))
    status, body = await _answer(envelope.get("payload", {}).get("query", ""))
    if status != 200:
        return JSONResponse({"jsonrpc": "2.0", "id": frame.get("id"), "error": {"code": -32000, "message": body["error"]}})
    return JSONResponse({"jsonrpc": "2.0", "id": frame.get("id"), "result": {"envelope_json": json.dumps(body)}})


def main() -> int:
    import uvicorn

    parser = argparse.ArgumentParser()
    parser.add_argument("--port", type=int, default=4001)
    parser.add_argument("--behavior", choices=["good", "empty", "metadata", "sparse", "slow", "error"], default="good")
    args = parser.parse_args()
    BEHAVIOR["name"] = args.behavior
    uvicorn.run(app, host="127.0.0.1", port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
