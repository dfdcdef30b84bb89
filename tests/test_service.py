"""End-to-end routing through CoordinatorService with mocked downstreams."""
import json
import unittest

import httpx

from coordinator.catalog import ServiceCatalog
from coordinator.config import CascadeSettings, Config
from coordinator.dispatcher import EXHAUSTED_CANDIDATES, FOUND_GOOD_RESPONSE, CascadingDispatcher
from coordinator.envelope import to_envelope_request
from coordinator.ranking import CandidateRanker, RankingProviderError
from coordinator.service import CoordinatorService
from coordinator.transport import TransportInvoker

CARDS = [
    {"name": "user-profile-service", "endpoint": "http://profiles.test", "transport": "http",
     "capabilities": ["user", "profile", "account"]},
    {"name": "course-catalog-service", "endpoint": "http://courses.test", "transport": "rpc",
     "capabilities": ["course", "catalog", "lesson"]},
    {"name": "analytics-service", "endpoint": "http://analytics.test", "transport": "http",
     "capabilities": ["analytics", "report", "progress"]},
    {"name": "retired-service", "endpoint": "http://retired.test", "capabilities": ["course"],
     "status": "inactive"},
]

GOOD = {"success": True, "data": {"title": "Algebra", "level": 2, "lessons": 12, "author": "Ada"}}


class FailingProvider:
    name = "broken"

    def rank(self, query, services, timeout):
        raise RankingProviderError("provider unreachable")


class FixedProvider:
    name = "fixed"

    def __init__(self, suggestions):
        self.suggestions = suggestions

    def rank(self, query, services, timeout):
        return self.suggestions


def _handler(bodies, seen):
    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        seen.append(host)
        body = bodies.get(host)
        if body is None:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/rpc":
            frame = json.loads(request.content)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": frame["id"], "result": {"envelope_json": json.dumps(body)}})
        return httpx.Response(200, json=body)
    return handler


def _service(bodies, seen, provider=None, settings=None):
    invoker = TransportInvoker(http_transport=httpx.MockTransport(_handler(bodies, seen)))
    return CoordinatorService(
        catalog=ServiceCatalog(CARDS),
        ranker=CandidateRanker(provider),
        dispatcher=CascadingDispatcher(invoker, settings or CascadeSettings()),
    )


class CoordinatorServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_provider_ranking_cascades_across_transports(self):
        seen = []
        provider = FixedProvider([
            {"service_name": "user-profile-service", "confidence": 0.9, "rationale": "guess"},
            {"service_name": "course-catalog-service", "confidence": 0.8, "rationale": "courses"},
        ])
        service = _service(
            {"profiles.test": {"success": True, "data": {}}, "courses.test": GOOD},
            seen,
            provider=provider,
        )
        outcome = await service.route(to_envelope_request("http", {"query": "algebra course"}))

        self.assertEqual(outcome.ranking.method, "provider")
        self.assertEqual(outcome.cascade.stop_reason, FOUND_GOOD_RESPONSE)
        self.assertEqual(outcome.cascade.successful_rank, 2)
        self.assertEqual(outcome.cascade.successful_attempt.transport, "rpc")
        self.assertEqual(seen, ["profiles.test", "courses.test"])

        body = outcome.to_dict()
        self.assertEqual(body["query"], "algebra course")
        self.assertEqual(body["successful_attempt"]["data"], GOOD["data"])
        self.assertEqual(body["ranking"]["method"], "provider")

    async def test_provider_failure_falls_back_to_keywords(self):
        seen = []
        service = _service({"courses.test": GOOD}, seen, provider=FailingProvider())
        outcome = await service.route(to_envelope_request("rpc", {"query_text": "list course lesson"}))

        self.assertEqual(outcome.ranking.method, "fallback")
        self.assertIn("provider unreachable", outcome.ranking.fallback_reason)
        self.assertEqual(outcome.cascade.stop_reason, FOUND_GOOD_RESPONSE)
        self.assertEqual(outcome.cascade.successful_attempt.service_name, "course-catalog-service")
        self.assertNotIn("retired.test", seen)

    async def test_exhaustion_reports_every_attempt(self):
        seen = []
        provider = FixedProvider([
            {"service_name": "analytics-service", "confidence": 0.9, "rationale": ""},
            {"service_name": "user-profile-service", "confidence": 0.7, "rationale": ""},
        ])
        service = _service({"analytics.test": {"timestamp": "now", "status": "ok"}}, seen, provider=provider)
        outcome = await service.route(to_envelope_request("http", {"query": "progress report"}))

        self.assertEqual(outcome.cascade.stop_reason, EXHAUSTED_CANDIDATES)
        reasons = [a["reject_reason"] for a in outcome.to_dict()["attempts"]]
        self.assertEqual(reasons, ["only_metadata", "unreachable"])

    async def test_no_matching_service(self):
        service = _service({}, [])
        outcome = await service.route(to_envelope_request("http", {"query": "weather forecast"}))
        self.assertEqual(outcome.cascade.stop_reason, EXHAUSTED_CANDIDATES)
        self.assertEqual(outcome.cascade.total_attempts, 0)

    async def test_health_probes_active_services(self):
        seen = []
        service = _service({"profiles.test": GOOD, "courses.test": GOOD}, seen)
        report = await service.health(timeout=1.0)
        by_name = {item["service"]: item for item in report}
        self.assertEqual(set(by_name), {"user-profile-service", "course-catalog-service", "analytics-service"})
        self.assertTrue(by_name["user-profile-service"]["ok"])
        self.assertFalse(by_name["analytics-service"]["ok"])
        self.assertEqual(by_name["analytics-service"]["error_class"], "unreachable")

    def test_routing_context(self):
        service = _service({}, [])
        context = service.routing_context()
        self.assertIsNone(context["ranking_provider"])
        self.assertEqual(context["active_services"], 3)
        self.assertEqual(context["cascade"]["max_fallback_attempts"], 5)

    def test_from_config(self):
        config = Config({
            "cascade": {"max_fallback_attempts": 2, "min_quality_score": 0.7},
            "ranking": {"provider": "none"},
            "services": {"cards": CARDS[:1]},
        })
        service = CoordinatorService.from_config(config)
        self.assertEqual(service.dispatcher.settings.max_fallback_attempts, 2)
        self.assertEqual(service.dispatcher.assessor.min_quality_score, 0.7)
        self.assertEqual([s.name for s in service.catalog.list_all()], ["user-profile-service"])
        self.assertIsNone(service.ranker.provider)


if __name__ == "__main__":
    unittest.main()
