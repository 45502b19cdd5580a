"""Integration tests for /health, /healthz and /metrics endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture
def http(app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(app)


class TestHealthEndpoint:
    """Test /health and /healthz endpoints."""

    def test_health_is_always_ok(self, http: TestClient) -> None:
        response = http.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_healthz_without_redis(self, http: TestClient) -> None:
        """In-memory counters report Redis as not configured."""
        response = http.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["components"] == {"store": "ok", "redis": "not_configured"}

    @patch("backend.app.api.routes.health.check_store")
    @patch("backend.app.api.routes.health.check_redis")
    def test_healthz_returns_503_when_store_fails(
        self,
        mock_check_redis: MagicMock,
        mock_check_store: MagicMock,
        http: TestClient,
    ) -> None:
        mock_check_store.return_value = (False, "error: OperationalError")
        mock_check_redis.return_value = (True, "ok")

        response = http.get("/healthz")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["store"] == "error: OperationalError"
        assert data["components"]["redis"] == "ok"

    @patch("backend.app.api.routes.health.check_store")
    @patch("backend.app.api.routes.health.check_redis")
    def test_healthz_returns_503_when_redis_fails(
        self,
        mock_check_redis: MagicMock,
        mock_check_store: MagicMock,
        http: TestClient,
    ) -> None:
        mock_check_store.return_value = (True, "ok")
        mock_check_redis.return_value = (False, "error: TimeoutError")

        response = http.get("/healthz")

        assert response.status_code == 503
        assert response.json()["components"]["redis"] == "error: TimeoutError"

    def test_healthz_reports_store_ping_failure(self, app: FastAPI, http: TestClient) -> None:
        app.state.store.ping = AsyncMock(side_effect=ConnectionError("refused"))

        response = http.get("/healthz")

        assert response.status_code == 503
        assert response.json()["components"]["store"] == "error: ConnectionError"

    def test_health_endpoints_are_not_rate_limited(self, http: TestClient) -> None:
        response = http.get("/health")

        assert "RateLimit-Limit" not in response.headers


class TestMetricsEndpoint:
    """Test /metrics endpoint."""

    def test_metrics_returns_prometheus_format(self, http: TestClient) -> None:
        response = http.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]

    def test_metrics_include_auth_and_tenancy_counters(self, http: TestClient) -> None:
        from backend.app.utils.metrics import (
            auth_attempts_total,
            rate_limit_rejections_total,
            tenancy_not_found_total,
        )

        auth_attempts_total.labels(method="jwt", outcome="rejected").inc()
        tenancy_not_found_total.labels(resource="chat").inc()
        rate_limit_rejections_total.labels(bucket="api").inc()

        text = http.get("/metrics").text

        assert "auth_attempts_total" in text
        assert "tenancy_not_found_total" in text
        assert "rate_limit_rejections_total" in text

    def test_failed_authentication_is_counted(self, http: TestClient) -> None:
        from backend.app.utils.metrics import auth_attempts_total

        rejected = auth_attempts_total.labels(method="user_api_key", outcome="rejected")
        before = rejected._value.get()
        http.get("/api/v1/chats", headers={"x-api-key": "nope"})
        after = rejected._value.get()

        assert after == before + 1
