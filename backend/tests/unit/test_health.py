"""
Unit Tests for Health Endpoints.

Database connectivity is patched so no PostgreSQL instance is needed.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client():
    """Test client for the FastAPI app (lifespan not started)."""
    return TestClient(app)


class TestHealth:
    """Tests for /api/health."""

    def test_basic(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed_with_database_up(self, client):
        with patch("app.routers.health.check_connection", new=AsyncMock()):
            body = client.get("/api/health/detailed").json()

        assert body["status"] == "healthy"
        assert body["dependencies"]["postgres"]["status"] == "healthy"
        assert body["dependencies"]["scheduler"]["status"] == "disabled"

    def test_detailed_with_database_down(self, client):
        failing = AsyncMock(side_effect=ConnectionRefusedError("db down"))
        with patch("app.routers.health.check_connection", new=failing):
            body = client.get("/api/health/detailed").json()

        assert body["status"] == "degraded"
        assert body["dependencies"]["postgres"]["status"] == "unhealthy"

    @pytest.mark.parametrize(
        "side_effect,ready",
        [
            pytest.param(None, True, id="ready"),
            pytest.param(ConnectionRefusedError("db down"), False, id="not_ready"),
        ],
    )
    def test_readiness(self, client, side_effect, ready):
        with patch(
            "app.routers.health.check_connection",
            new=AsyncMock(side_effect=side_effect),
        ):
            body = client.get("/api/health/ready").json()

        assert body["ready"] is ready
