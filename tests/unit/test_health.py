"""
Tests for health check endpoints.
"""

from unittest.mock import patch

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "crm-mail-sync"}


def test_readyz_endpoint_all_services_healthy():
    with patch("app.routes.health.check_db", return_value=True):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["database"]["ok"] is True
    assert data["checks"]["configuration"]["issues"] is None


def test_readyz_endpoint_database_unhealthy():
    with patch("app.routes.health.check_db", return_value="Connection failed"):
        response = client.get("/readyz")

    assert response.status_code == 503
    data = response.json()
    assert data["overall_ok"] is False
    assert data["checks"]["database"]["ok"] is False
    assert data["checks"]["database"]["error"] == "Connection failed"


def test_readyz_endpoint_missing_cron_secret():
    with (
        patch("app.routes.health.check_db", return_value=True),
        patch("app.routes.health.settings.CRON_SECRET", None),
    ):
        response = client.get("/readyz")

    assert response.status_code == 503
    assert "CRON_SECRET not set" in response.json()["checks"]["configuration"]["issues"]
