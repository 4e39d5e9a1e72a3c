"""Tests for the diagnostics API, with in-memory adapters injected into the app."""
import asyncio

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from models.schemas import EntityType


@pytest.fixture
def client(settings, facade):
    app = create_app(settings=settings, facade=facade)
    with TestClient(app) as test_client:
        yield test_client


class TestDiagnosticsAPI:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_status(self, client):
        body = client.get("/api/v1/integration/status").json()
        assert body["service"]["configured"] is True
        assert body["service"]["environment"] == "test"
        assert body["facade"]["secondary"] == "InMemoryBackendAdapter"
        assert body["scheduler"]["running"] is False
        assert body["scheduler"]["interval_seconds"] == 60

    def test_test_connection(self, client, primary):
        assert client.post("/api/v1/integration/test-connection").json() == {"connected": True}
        primary.down = True
        assert client.post("/api/v1/integration/test-connection").json() == {"connected": False}

    def test_reconcile_all(self, client, primary, secondary):
        primary.seed(EntityType.CLIENT, {"id": "C1"}, {"id": "C2"})

        body = client.post("/api/v1/integration/reconcile").json()

        assert set(body) == {"client", "product", "category"}
        assert body["client"]["count"] == 2
        assert body["client"]["success"] is True
        assert "C2" in secondary.records[EntityType.CLIENT]

    def test_reconcile_entity(self, client, primary, secondary):
        primary.seed(EntityType.BRAND, {"id": "B1"}, {"id": "B2"})
        secondary.fail_sync_ids = {"B2"}

        body = client.post("/api/v1/integration/reconcile/brand").json()

        assert body["entity"] == "brand"
        assert body["count"] == 1
        assert body["total"] == 2
        assert body["errors"][0].startswith("brand B2:")

    def test_reconcile_unknown_entity(self, client):
        resp = client.post("/api/v1/integration/reconcile/warehouse")
        assert resp.status_code == 404

    def test_sync_log(self, client, facade, primary, secondary):
        primary.seed(EntityType.CLIENT, {"id": "C1", "creditLimit": 50000})
        secondary.down = True

        asyncio.run(facade.clients.update("C1", {"creditLimit": 60000}))

        body = client.get("/api/v1/integration/sync-log", params={"failures_only": True}).json()
        assert body["stats"]["failed"] == 1
        assert body["entries"][0]["entity_id"] == "C1"
        assert body["entries"][0]["status"] == "failed"

    def test_sync_log_limit_validation(self, client):
        resp = client.get("/api/v1/integration/sync-log", params={"limit": 0})
        assert resp.status_code == 422

    def test_scheduler_run(self, client, primary):
        primary.seed(EntityType.PRODUCT, {"id": "P1"})
        body = client.post("/api/v1/integration/scheduler/run").json()
        assert body["status"] == "completed"
        assert body["results"]["product"]["count"] == 1

    def test_full_sync_failure_is_reported(self, client):
        resp = client.post("/api/v1/integration/full-sync")
        assert resp.status_code == 200
        body = resp.json()
        assert body["operation"] == "full_sync"
        assert body["status"] == "failed"
