"""Command line interface for the coordinator."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from coordinator.config import ConfigError, get_config
from coordinator.dispatcher import FOUND_GOOD_RESPONSE
from coordinator.envelope import to_envelope_request
from coordinator.service import CoordinatorService


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2))


def _build_service(args: argparse.Namespace) -> CoordinatorService:
    config = get_config()
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return CoordinatorService.from_config(config)


def cmd_route(args: argparse.Namespace) -> int:
    service = _build_service(args)
    raw = {"query": args.query, "tenant_id": args.tenant, "user_id": args.user}
    if args.metadata:
        raw["metadata"] = json.loads(args.metadata)
    outcome = asyncio.run(service.route(to_envelope_request("http", raw)))
    payload = outcome.to_dict()
    _print(payload)
    return 0 if payload["stop_reason"] == FOUND_GOOD_RESPONSE else 1


def cmd_rank(args: argparse.Namespace) -> int:
    service = _build_service(args)
    _print(service.rank(args.query).to_dict())
    return 0


def cmd_services(args: argparse.Namespace) -> int:
    service = _build_service(args)
    _print({"services": [entry.to_dict() for entry in service.catalog.list_all()]})
    return 0


def cmd_health(args: argparse.Namespace) -> int:
    service = _build_service(args)
    results = asyncio.run(service.health(timeout=args.timeout))
    _print({"services": results})
    return 0 if all(item["ok"] for item in results) else 1


def cmd_context(args: argparse.Namespace) -> int:
    service = _build_service(args)
    _print(service.routing_context())
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from coordinator.server import main as serve

    serve()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="coordinator")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command")

    route = sub.add_parser("route", help="Rank services and run the cascade for a query")
    route.add_argument("--query", required=True)
    route.add_argument("--tenant", default="default")
    route.add_argument("--user", default="anonymous")
    route.add_argument("--metadata", help="JSON object forwarded to services")

    rank = sub.add_parser("rank", help="Show the ranked candidates without calling them")
    rank.add_argument("--query", required=True)

    sub.add_parser("services")
    sub.add_parser("context")

    health = sub.add_parser("health")
    health.add_argument("--timeout", type=float, default=2.0)

    sub.add_parser("serve")
    return parser


COMMANDS = {
    "route": cmd_route,
    "rank": cmd_rank,
    "services": cmd_services,
    "context": cmd_context,
    "health": cmd_health,
    "serve": cmd_serve,
}


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return
    try:
        sys.exit(handler(args))
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
