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
    data = response.json()
    assert data["status"] == "ok"


def test_health_endpoint_has_timestamp():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "timestamp" in response.json()


def test_readyz_all_configured():
    """Test readiness endpoint when every integration is configured."""
    with (
        patch("app.routes.health.settings.ASC_ISSUER_ID", "issuer"),
        patch("app.routes.health.settings.ASC_KEY_ID", "KEY"),
        patch("app.routes.health.settings.ASC_PRIVATE_KEY", "pem"),
        patch("app.routes.health.settings.GITHUB_OWNER", "acme"),
        patch("app.routes.health.settings.GITHUB_REPO", "ios-app"),
        patch("app.routes.health.settings.GITHUB_TOKEN", "ghp"),
        patch("app.routes.health.settings.SMTP_HOST", "smtp.example.com"),
    ):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["missing_settings"] == []
    checks = data["checks"]
    assert checks["app_store_connect"]["ok"] is True
    assert checks["pipeline"]["ok"] is True
    assert checks["email"]["ok"] is True


def test_readyz_missing_vendor_credentials():
    """Missing settings are reported but the endpoint still answers 200."""
    with (
        patch("app.routes.health.settings.ASC_ISSUER_ID", ""),
        patch("app.routes.health.settings.GITHUB_OWNER", "acme"),
        patch("app.routes.health.settings.GITHUB_REPO", "ios-app"),
        patch("app.routes.health.settings.GITHUB_TOKEN", "ghp"),
        patch("app.routes.health.settings.SMTP_HOST", "smtp.example.com"),
    ):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is False
    assert "ASC_ISSUER_ID" in data["missing_settings"]
    assert data["checks"]["app_store_connect"]["ok"] is False
    assert data["checks"]["pipeline"]["ok"] is True


def test_readyz_reports_signing():
    with (
        patch("app.routes.health.settings.SSL_CERT", "cert"),
        patch("app.routes.health.settings.SSL_KEY", "key"),
    ):
        signed = client.get("/readyz").json()["checks"]["profile_signing"]["signed"]
    with patch("app.routes.health.settings.SSL_CERT", ""):
        unsigned = client.get("/readyz").json()["checks"]["profile_signing"]["signed"]

    assert signed is True
    assert unsigned is False
