import httpx
import pytest

from tramites.main import TramitesRuntime, build_http_app
from tramites.metrics import reset_metrics_for_tests


class DummyStore:
    def save(self, state) -> None:  # pragma: no cover - simple stub
        self.state = state


@pytest.mark.asyncio
async def test_health_and_metrics_endpoints(service, settings):
    reset_metrics_for_tests()
    service.generate_from_template("rne", "client-1")
    runtime = TramitesRuntime(settings=settings, service=service, store=DummyStore())
    app = build_http_app(runtime)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        health = await client.get("/healthz")
        assert health.status_code == 200
        body = health.json()
        assert body["status"] == "ok"
        assert body["templates"] == 3
        assert body["processes"]["pending"] == 1
        assert body["processes"]["archived"] == 0
        assert body["unread_notifications"] == 1

        metrics = await client.get("/metrics")
        assert metrics.status_code == 200
        assert metrics.headers["content-type"].startswith("text/plain")
        assert 'tramites_http_requests_total{method="GET",path="/healthz",status="200"} 1.0' in metrics.text
        assert 'tramites_processes_generated_total{origin="template"} 1.0' in metrics.text
