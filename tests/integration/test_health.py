"""Integration tests for health check endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from tests.conftest import AUTH_HEADERS, CUSTOMER_ID

HEALTHY = AsyncMock(return_value={"healthy": True})


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client: TestClient) -> None:
        """Test that /health endpoint returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_status_and_version(self, client: TestClient) -> None:
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["timestamp"] is not None


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_readiness_returns_200_when_healthy(self, client: TestClient) -> None:
        """Test that /health/ready returns 200 when all dependencies are healthy."""
        with patch("src.api.routes.health.check_database_connection", HEALTHY), \
             patch("src.api.routes.health.check_carrier_connection", HEALTHY):
            response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"]["healthy"] is True
        assert data["carrier"]["healthy"] is True
        assert data["database"]["latency_ms"] is not None
        assert data["carrier"]["latency_ms"] is not None
        assert "checks" not in data

    def test_readiness_returns_503_when_carrier_unhealthy(self, client: TestClient) -> None:
        """Test that an unreachable carrier marks the service unready."""
        carrier_down = AsyncMock(return_value={"healthy": False, "error": "Timed out after 10.0s"})

        with patch("src.api.routes.health.check_database_connection", HEALTHY), \
             patch("src.api.routes.health.check_carrier_connection", carrier_down):
            response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["database"]["healthy"] is True
        assert data["carrier"]["healthy"] is False
        assert data["carrier"]["error"] == "Timed out after 10.0s"

    def test_readiness_returns_503_when_database_unhealthy(self, client: TestClient) -> None:
        db_down = AsyncMock(return_value={"healthy": False, "error": "connection refused"})

        with patch("src.api.routes.health.check_database_connection", db_down), \
             patch("src.api.routes.health.check_carrier_connection", HEALTHY):
            response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["database"]["healthy"] is False
        assert data["database"]["error"] == "connection refused"
        assert data["carrier"]["healthy"] is True


class TestAuthenticatedHealth:
    """Tests for /health/auth endpoint."""

    def test_requires_token(self, client: TestClient) -> None:
        response = client.get("/health/auth")

        assert response.status_code == 401

    def test_returns_user(self, client: TestClient, as_customer: MagicMock) -> None:
        response = client.get("/health/auth", headers=AUTH_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["user_id"] == CUSTOMER_ID
        assert data["email"] == "buyer@example.com"
        as_customer.assert_called_once_with("valid-token")
