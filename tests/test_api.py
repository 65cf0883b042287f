"""Tests for the external listings HTTP API."""

import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from internagg.api import create_app
from internagg.api.routers.external import _log_sync_outcome
from internagg.collectors.base import SourceTimeoutError
from internagg.scheduler import SyncScheduler


@pytest.fixture
def aggregator(make_aggregator, make_source, make_raw):
    """Aggregator with one healthy and one failing source, already synced once."""
    aggregator = make_aggregator([
        make_source("alpha", 1, listings=[
            make_raw("Finance Intern", stipend={"amount": 10000}),
            make_raw("React Frontend Intern", stipend={"amount": 20000}),
        ]),
        make_source("beta", 2, error=SourceTimeoutError("beta")),
    ])
    asyncio.run(aggregator.sync_all_platforms(["x"]))
    return aggregator


@pytest.fixture
def client(aggregator):
    app = create_app(
        aggregator=aggregator,
        scheduler=SyncScheduler(aggregator, enabled=False),
        start_scheduler=False,
    )
    with TestClient(app) as client:
        yield client


class TestJobsEndpoint:
    """Test GET /api/external/jobs."""

    def test_list_jobs(self, client):
        response = client.get("/api/external/jobs")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["count"] == 2
        assert body["pagination"] == {"page": 1, "limit": 10, "total": 2, "pages": 1}
        assert all(item["is_external"] for item in body["data"])

    def test_category_filter(self, client):
        response = client.get("/api/external/jobs", params={"category": "Finance"})

        titles = [item["title"] for item in response.json()["data"]]
        assert titles == ["Finance Intern"]

    def test_invalid_limit(self, client):
        response = client.get("/api/external/jobs", params={"limit": 0})
        assert response.status_code == 422


class TestStatusEndpoints:
    """Test stats, status and health endpoints."""

    def test_stats(self, client):
        response = client.get("/api/external/stats")

        assert response.status_code == 200
        assert response.json()["by_source"]["alpha"] == {"count": 2, "avg_stipend": 15000}

    def test_status(self, client):
        body = client.get("/api/external/status").json()

        assert body["is_running"] is False
        assert body["enabled"] is False
        assert body["last_sync_stats"]["by_source"] == {"alpha": 2}
        assert body["api_health"]["beta"]["circuit_open"] is True

    def test_health(self, client):
        body = client.get("/api/external/health").json()

        assert "timestamp" in body
        assert body["api_health"]["alpha"]["status"] == "up"
        assert body["api_health"]["beta"]["status"] == "down"


class TestSyncEndpoint:
    """Test POST /api/external/sync."""

    def test_trigger(self, client):
        response = client.post("/api/external/sync", json={"queries": ["finance"]})

        assert response.status_code == 202
        assert response.json()["status"] == "triggered"

    def test_conflict_while_running(self, client, aggregator):
        """A sync request during an active run is rejected with 409."""
        aggregator._is_running = True
        try:
            response = client.post("/api/external/sync")
        finally:
            aggregator._is_running = False

        assert response.status_code == 409

    def test_back_to_back_triggers(self, make_aggregator, make_source, make_raw):
        """A second trigger before the first run finishes is rejected."""
        gate = asyncio.Event()
        aggregator = make_aggregator([make_source("alpha", 1, listings=[make_raw()], gate=gate)])
        app = create_app(
            aggregator=aggregator,
            scheduler=SyncScheduler(aggregator, enabled=False),
            start_scheduler=False,
        )

        with TestClient(app) as client:
            first = client.post("/api/external/sync")
            second = client.post("/api/external/sync")

        assert first.status_code == 202
        assert second.status_code == 409
        # Shutdown cancels the run still waiting on the gate
        assert app.state.sync_task.done()
        assert aggregator.is_running is False

    def test_failed_sync_is_logged(self, caplog):
        async def failing_sync():
            raise RuntimeError("store unavailable")

        async def scenario():
            task = asyncio.create_task(failing_sync())
            await asyncio.gather(task, return_exceptions=True)
            return task

        task = asyncio.run(scenario())
        with caplog.at_level(logging.ERROR):
            _log_sync_outcome(task)

        assert "Manual sync failed: store unavailable" in caplog.text


class TestSearchEndpoint:
    """Test GET /api/external/search."""

    def test_search_all_platforms(self, client):
        response = client.get("/api/external/search", params={"q": "finance"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["platform"] == "all"
        assert body["count"] == 2
        assert {item["source"] for item in body["data"]} == {"alpha"}
        assert body["api_health"]["beta"]["circuit_open"] is True

    def test_single_platform(self, client, aggregator):
        body = client.get("/api/external/search", params={"platform": "alpha"}).json()

        assert body["platform"] == "alpha"
        assert [item["category"] for item in body["data"]] == ["Finance", "Web Development"]
        assert aggregator.get_source("alpha").queries[-1] == "internship"

    def test_unknown_platform(self, client):
        response = client.get("/api/external/search", params={"platform": "monster"})
        assert response.status_code == 400

    def test_results_are_not_stored(self, make_aggregator, make_source, make_raw, store):
        """Live search leaves the listing store untouched."""
        aggregator = make_aggregator([make_source("alpha", 1, listings=[make_raw()])])
        app = create_app(
            aggregator=aggregator,
            scheduler=SyncScheduler(aggregator, enabled=False),
            start_scheduler=False,
        )

        with TestClient(app) as client:
            body = client.get("/api/external/search", params={"q": "data"}).json()

        assert body["count"] == 1
        assert store.count() == 0


class TestWithoutAggregator:
    """Test endpoints before the aggregator is wired."""

    def test_service_unavailable(self):
        client = TestClient(create_app(start_scheduler=False))
        assert client.get("/api/external/stats").status_code == 503
