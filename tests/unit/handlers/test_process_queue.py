"""
Module: test_process_queue.py
Description: Tests for the HTTP trigger endpoints.

Uses FastAPI's TestClient with the coordinator and reconciler
dependencies overridden.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from email_queue.handlers.process_queue import get_coordinator, get_reconciler
from email_queue.main import app
from email_queue.models.response import Anomaly, ReconcileSummary, RunSummary
from email_queue.storage.dynamodb import StoreUnavailableError


@pytest.fixture
def coordinator():
    mock = MagicMock()
    mock.run_once = AsyncMock(return_value=RunSummary(
        run_id="run_0123456789ab",
        claimed=3,
        sent=1,
        requeued=1,
        dead=0,
        anomalies=[Anomaly(item_id="eml_000000000003", reason="lock token mismatch")],
        duration_ms=41.5
    ))
    return mock


@pytest.fixture
def reconciler():
    mock = MagicMock()
    mock.sweep = AsyncMock(return_value=ReconcileSummary(scanned=2, requeued=1, dead=1))
    return mock


@pytest.fixture
def client(coordinator, reconciler):
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestProcessQueueEndpoint:
    """Test cases for POST /process-queue."""

    def test_returns_camel_case_summary(self, client, coordinator):
        response = client.post("/process-queue")

        assert response.status_code == 200
        data = response.json()
        assert data["runId"] == "run_0123456789ab"
        assert (data["claimed"], data["sent"], data["requeued"], data["dead"]) == (3, 1, 1, 0)
        assert data["anomalies"] == [{"itemId": "eml_000000000003", "reason": "lock token mismatch"}]
        assert data["budgetExhausted"] is False
        coordinator.run_once.assert_awaited_once_with(batch_size=None, dry_run=False)

    def test_accepts_overrides(self, client, coordinator):
        response = client.post("/process-queue", json={"batchSize": 7, "dryRun": True})

        assert response.status_code == 200
        coordinator.run_once.assert_awaited_once_with(batch_size=7, dry_run=True)

    def test_accepts_snake_case_overrides(self, client, coordinator):
        client.post("/process-queue", json={"batch_size": 3})

        coordinator.run_once.assert_awaited_once_with(batch_size=3, dry_run=False)

    def test_invalid_batch_size_is_400(self, client, coordinator):
        response = client.post("/process-queue", json={"batchSize": 0})

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "validation_error"
        coordinator.run_once.assert_not_awaited()

    def test_store_unavailable_is_503(self, client, coordinator):
        coordinator.run_once.side_effect = StoreUnavailableError("Failed to query claim candidates")

        response = client.post("/process-queue")

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["type"] == "store_unavailable"
        assert "Failed to query claim candidates" in error["message"]
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unexpected_error_is_500(self, coordinator, reconciler):
        coordinator.run_once.side_effect = RuntimeError("boom")
        app.dependency_overrides[get_coordinator] = lambda: coordinator
        try:
            response = TestClient(app, raise_server_exceptions=False).post("/process-queue")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json()["error"]["type"] == "internal_error"


class TestCors:
    """Permissive CORS on every response."""

    def test_preflight(self, client, coordinator):
        response = client.options("/process-queue")

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-headers"] == "authorization, x-client-info, apikey, content-type"
        assert "POST" in response.headers["access-control-allow-methods"]
        coordinator.run_once.assert_not_awaited()

    @pytest.mark.parametrize("method, path", [
        ("post", "/process-queue"),
        ("post", "/reconcile"),
        ("get", "/health"),
    ])
    def test_headers_on_responses(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-headers"] == "authorization, x-client-info, apikey, content-type"

    def test_headers_on_validation_errors(self, client):
        response = client.post("/process-queue", json={"batchSize": 500})

        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == "*"


class TestReconcileEndpoint:

    def test_returns_summary(self, client, reconciler):
        response = client.post("/reconcile")

        assert response.status_code == 200
        assert response.json() == {"scanned": 2, "requeued": 1, "dead": 1, "conflicts": 0, "errors": 0}
        reconciler.sweep.assert_awaited_once_with()

    def test_limit_override(self, client, reconciler):
        client.post("/reconcile", json={"limit": 5})

        reconciler.sweep.assert_awaited_once_with(limit=5)

    def test_store_unavailable_is_503(self, client, reconciler):
        reconciler.sweep.side_effect = StoreUnavailableError("Failed to query stale items")

        response = client.post("/reconcile")

        assert response.status_code == 503


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data
