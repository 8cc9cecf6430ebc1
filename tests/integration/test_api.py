"""API tests against a container wired with a fake provider."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from hexsweep.api.main import app
from hexsweep.config.settings import Settings
from hexsweep.api.routes.runs import _run_in_background
from hexsweep.core.container import DependencyContainer, get_container, set_container
from hexsweep.models.schemas import ImportLogStatus, SearchPage, StagingRecord
from hexsweep.storage.import_logs import ImportLogRepository
from hexsweep.storage.memory_store import InMemoryStore
from tests.helpers import FakeClock, FakeSearchProvider, make_business

pytestmark = pytest.mark.integration


def _settings(**overrides):
    values = {
        "yelp_api_key": None,
        "supabase_url": None,
        "supabase_key": None,
        "app_env": "development",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _three_per_call(index, lat, lng, offset, limit):
    return SearchPage(
        total=3,
        businesses=[make_business(f"call{index}-{i}", lat, lng) for i in range(3)],
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def provider():
    return FakeSearchProvider(_three_per_call)


@pytest.fixture
def client(store, provider):
    """Client over a container with a fake provider and in-memory store."""
    container = DependencyContainer(
        settings=_settings(),
        store=store,
        collector=provider,
        clock=FakeClock(),
    )
    set_container(container)
    with TestClient(app) as test_client:
        yield test_client
    set_container(None)


class TestRunEndpoints:
    """Test run lifecycle over HTTP."""

    def test_start_run_processes_cells(self, client, store, provider, nyc_cell):
        """The background run finishes before the test client returns."""
        response = client.post("/api/v1/runs", json={"cell_ids": [nyc_cell]})

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "accepted"
        assert body["cell_count"] == 1
        assert body["estimated_api_calls"] == 13

        status = client.get("/api/v1/runs/status").json()
        assert status["import_run_id"] == body["import_run_id"]
        assert status["is_running"] is False
        assert status["processed_cells"] == 1
        assert status["api_calls"] == len(provider.calls) == 7
        assert store.count("yelp_staging") == 21

    def test_start_run_from_polygon(self, client):
        polygon = {
            "type": "Polygon",
            "coordinates": [[
                [-74.01, 40.71], [-74.00, 40.71], [-74.00, 40.72], [-74.01, 40.72], [-74.01, 40.71],
            ]],
        }

        response = client.post("/api/v1/runs", json={"polygon": polygon, "resolution": 7})

        assert response.status_code == 202
        assert response.json()["cell_count"] >= 1

    def test_invalid_polygon(self, client):
        response = client.post(
            "/api/v1/runs",
            json={"polygon": {"type": "Point", "coordinates": [-74.0, 40.7]}},
        )

        assert response.status_code == 400

    def test_requires_cells_or_polygon(self, client):
        response = client.post("/api/v1/runs", json={})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_second_request_refused_while_first_is_scheduled(self, client, provider, nyc_cell):
        """A run accepted but not yet started already blocks the next request."""
        with patch("hexsweep.api.routes.runs._run_in_background", new=AsyncMock()) as scheduled:
            first = client.post("/api/v1/runs", json={"cell_ids": [nyc_cell]})
            second = client.post("/api/v1/runs", json={"cell_ids": [nyc_cell]})

        assert first.status_code == 202
        assert second.status_code == 409
        assert scheduled.await_count == 1
        assert provider.calls == []
        status = client.get("/api/v1/runs/status").json()
        assert status["is_running"] is True
        assert status["import_run_id"] == first.json()["import_run_id"]

    def test_cancel_when_idle(self, client):
        response = client.post("/api/v1/runs/cancel")

        assert response.status_code == 200
        assert response.json()["cancelled"] is False

    def test_quota_endpoint(self, client):
        body = client.get("/api/v1/quota").json()

        assert body["calls_today"] == 0
        assert body["daily_limit"] == 5000
        assert body["daily_remaining"] == 5000
        assert body["per_second_limit"] == 10

    def test_quota_reset(self, client):
        container = get_container()
        for _ in range(3):
            container.quota.record_call()
        assert client.get("/api/v1/quota").json()["calls_today"] == 3

        response = client.post("/api/v1/quota/reset")

        assert response.status_code == 200
        assert response.json()["calls_today"] == 0
        assert response.json()["daily_remaining"] == 5000


class TestBackgroundRuns:
    """Test the task that executes accepted runs."""

    @pytest.mark.asyncio
    async def test_overlapping_background_runs(self, store, provider, nyc_cell):
        """The second run is logged and dropped; the first completes."""
        container = DependencyContainer(
            settings=_settings(),
            store=store,
            collector=provider,
            clock=FakeClock(),
        )
        pipeline = container.pipeline
        import_logs = ImportLogRepository(store, table=container.settings.import_logs_table)

        outcomes = await asyncio.gather(
            _run_in_background(pipeline, [nyc_cell], "run-a", None),
            _run_in_background(pipeline, [nyc_cell], "run-b", None),
        )

        assert outcomes == [None, None]
        assert import_logs.get("run-a").status == ImportLogStatus.COMPLETE
        assert import_logs.get("run-b") is None
        assert pipeline.is_running is False


class TestQuotaRefusal:
    def test_run_refused_with_429(self, store, provider, nyc_cell):
        container = DependencyContainer(
            settings=_settings(rate_limit_per_day=5),
            store=store,
            collector=provider,
            clock=FakeClock(),
        )
        set_container(container)
        try:
            with TestClient(app) as client:
                response = client.post("/api/v1/runs", json={"cell_ids": [nyc_cell]})
        finally:
            set_container(None)

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "quota_exhausted"
        assert body["estimated_calls"] == 13
        assert body["remaining"] == 5
        assert provider.calls == []


class TestRunsDisabled:
    def test_runs_unavailable_without_api_key(self, store, nyc_cell):
        set_container(DependencyContainer(settings=_settings(), store=store, clock=FakeClock()))
        try:
            with TestClient(app) as client:
                run_response = client.post("/api/v1/runs", json={"cell_ids": [nyc_cell]})
                quota_response = client.get("/api/v1/quota")
        finally:
            set_container(None)

        assert run_response.status_code == 503
        assert quota_response.status_code == 200


class TestStagingEndpoints:
    def test_bulk_status_update(self, client, store):
        record = StagingRecord.from_business(make_business("a"), "cell-1", "run-1")
        store.insert_batch("yelp_staging", [record.to_db_row()])

        response = client.post(
            "/api/v1/staging/status",
            json={"ids": ["a", "missing"], "status": "approved"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success_count"] == 1
        assert body["failed_ids"] == ["missing"]
        assert store.select_by_ids("yelp_staging", ["a"])[0]["status"] == "approved"

    def test_rejects_unknown_status(self, client):
        response = client.post("/api/v1/staging/status", json={"ids": ["a"], "status": "maybe"})

        assert response.status_code == 422


class TestHealthEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["services"]["pipeline"]["status"] == "healthy"
        assert body["services"]["store"]["status"] == "degraded"

    def test_liveness(self, client):
        assert client.get("/health/live").json()["status"] == "alive"
