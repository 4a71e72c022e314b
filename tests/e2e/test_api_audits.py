"""End-to-end tests for the audit API endpoints."""

from uuid import uuid4

import httpx
import pytest

from aeo_audit.api.dependencies import get_db_session, get_orchestrator
from aeo_audit.api.main import app
from aeo_audit.config.settings import Settings
from aeo_audit.crawler.provider import ProviderState, ProviderStatus


@pytest.fixture
def provider(fake_provider_class, payload_factory, scenario_a_html, scenario_b_html):
    """Crawl provider that finishes immediately with two pages."""
    return fake_provider_class(
        pages=[
            payload_factory("https://example.com/guides/aeo-basics", scenario_a_html),
            payload_factory("http://example.com/plain", scenario_b_html),
        ],
    )


@pytest.fixture
async def client(make_orchestrator, session_factory, provider):
    """HTTP client against the app with the test store and provider wired in."""

    async def override_orchestrator():
        orchestrator = make_orchestrator(provider)
        try:
            yield orchestrator
        finally:
            await orchestrator.close()

    async def override_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_orchestrator] = override_orchestrator
    app.dependency_overrides[get_db_session] = override_db_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


@pytest.mark.e2e
@pytest.mark.asyncio
class TestHealthEndpoint:
    """Test the health check endpoint."""

    async def test_health(self, client: httpx.AsyncClient) -> None:
        """Test that the service reports a healthy database."""
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "aeo-audit", "database": "ok"}


@pytest.mark.e2e
@pytest.mark.asyncio
class TestAuditEndpoints:
    """Test the audit endpoints end to end."""

    async def test_audit_flow(self, client: httpx.AsyncClient) -> None:
        """Test start, poll and results for a finished crawl."""
        response = await client.post(
            "/api/v1/audits",
            json={"url": "example.com", "owner_id": "user-123", "max_pages": 10},
        )
        assert response.status_code == 202
        started = response.json()
        assert started["status"] == "started"
        job_id = started["job_id"]

        pending = await client.get(f"/api/v1/audits/{job_id}")
        assert pending.status_code == 200
        assert pending.json() == {"job_id": job_id, "status": "started"}

        status_response = await client.get(f"/api/v1/audits/{job_id}/status")
        assert status_response.status_code == 200
        assert status_response.json() == {"job_id": job_id, "status": "completed", "progress_percent": 100}

        report_response = await client.get(f"/api/v1/audits/{job_id}")
        assert report_response.status_code == 200
        report = report_response.json()
        assert report["status"] == "completed"
        assert report["site"]["root_domain"] == "example.com"
        assert report["summary"]["total_pages"] == 2
        assert report["summary"]["issue_counts"]["critical"] >= 3
        assert len(report["pages"]) == 2
        for page in report["pages"]:
            assert page["checklist"]
            assert all(issue["diagnostic"] for issue in page["issues"])
        assert report["global_recommendations"]

    async def test_invalid_url(self, client: httpx.AsyncClient) -> None:
        """Test that local targets are rejected with 400."""
        response = await client.post(
            "/api/v1/audits",
            json={"url": "http://127.0.0.1:8080", "owner_id": "user-123"},
        )
        assert response.status_code == 400

    async def test_request_validation(self, client: httpx.AsyncClient) -> None:
        """Test schema validation of the request body."""
        response = await client.post(
            "/api/v1/audits",
            json={"url": "https://example.com", "owner_id": "  ", "max_pages": 0},
        )
        assert response.status_code == 422

    async def test_unknown_job(self, client: httpx.AsyncClient) -> None:
        """Test 404 for unknown job IDs."""
        missing = uuid4()
        assert (await client.get(f"/api/v1/audits/{missing}/status")).status_code == 404
        assert (await client.get(f"/api/v1/audits/{missing}")).status_code == 404
        assert (await client.post(f"/api/v1/audits/{missing}/cancel")).status_code == 404

    async def test_malformed_job_id(self, client: httpx.AsyncClient) -> None:
        """Test that non-UUID job IDs are rejected."""
        response = await client.get("/api/v1/audits/not-a-uuid/status")
        assert response.status_code == 422

    async def test_cancel(self, client: httpx.AsyncClient, provider) -> None:
        """Test cancelling a running audit."""
        provider.states = [ProviderStatus(state=ProviderState.RUNNING, percent=10)]
        job_id = (
            await client.post("/api/v1/audits", json={"url": "https://example.com", "owner_id": "user-123"})
        ).json()["job_id"]

        response = await client.post(f"/api/v1/audits/{job_id}/cancel")
        assert response.status_code == 200
        assert response.json() == {"job_id": job_id, "status": "failed", "cancelled": True}

        status_response = await client.get(f"/api/v1/audits/{job_id}/status")
        assert status_response.json()["status"] == "failed"
        assert status_response.json()["progress_percent"] == 80


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_missing_provider_key_returns_503(monkeypatch) -> None:
    """Test that an unconfigured crawl provider makes the audit endpoints unavailable."""
    monkeypatch.setattr("aeo_audit.api.dependencies.settings", Settings(_env_file=None, firecrawl_api_key=None))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/v1/audits",
            json={"url": "https://example.com", "owner_id": "user-123"},
        )
    assert response.status_code == 503
