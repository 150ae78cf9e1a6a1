"""Integration tests for health check endpoints."""

from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client: TestClient) -> None:
        """Test that /health endpoint returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        response = client.get("/health")
        data = response.json()

        assert data["status"] == "healthy"
        assert data["timestamp"] is not None
        assert data["version"] == "0.1.0"


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_readiness_returns_200_when_healthy(self, client: TestClient) -> None:
        """Test that /health/ready returns 200 when all dependencies are healthy."""
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness_includes_database_and_paystack_checks(self, client: TestClient) -> None:
        response = client.get("/health/ready")
        data = response.json()

        check_names = [check["name"] for check in data["checks"]]
        assert check_names == ["database", "paystack"]

        db_check = data["checks"][0]
        assert db_check["latency_ms"] is not None

    def test_readiness_returns_503_when_database_unhealthy(
        self, client: TestClient, mock_supabase_client: MagicMock
    ) -> None:
        """Test that /health/ready returns 503 when the database is down."""
        mock_supabase_client.table.return_value.select.return_value.limit.return_value.execute.side_effect = (
            Exception("Connection refused")
        )

        response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        db_check = next(c for c in data["checks"] if c["name"] == "database")
        assert db_check["healthy"] is False
        assert "Connection refused" in db_check["error"]

    @patch("src.api.routes.health.get_settings")
    def test_readiness_returns_503_without_paystack_key(self, mock_settings: MagicMock, client: TestClient) -> None:
        mock_settings.return_value.paystack_secret_key = ""

        response = client.get("/health/ready")

        assert response.status_code == 503
        paystack_check = next(c for c in response.json()["checks"] if c["name"] == "paystack")
        assert paystack_check["healthy"] is False


class TestMetricsEndpoint:
    """Tests for /health/metrics endpoint."""

    def test_reports_latency_stats(self, client: TestClient) -> None:
        client.get("/api/v1/admin/orders/660e8400-e29b-41d4-a716-446655440000")

        response = client.get("/health/metrics")

        assert response.status_code == 200
        data = response.json()
        assert data["overall"]["total_requests"] >= 1
        assert "/api/v1/admin/orders/{id}" in data["by_path"]


class TestErrorFormat:
    """Tests for the shared error body."""

    def test_unknown_route_uses_error_shape(self, client: TestClient) -> None:
        response = client.get("/api/v1/does-not-exist")

        assert response.status_code == 404
        assert "error" in response.json()
