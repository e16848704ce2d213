"""Tests for security headers middleware.

Verifies that security headers are present on API responses, including
error responses produced by other middleware.
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client():
    """Get test client for the application."""
    from gatekeeper.main import app

    return TestClient(app)


class TestSecurityHeaders:
    """Tests for SecurityHeadersMiddleware."""

    def test_static_headers(self, client):
        response = client.get("/")
        assert response.headers.get("X-Content-Type-Options") == "nosniff"
        assert response.headers.get("X-Frame-Options") == "DENY"
        assert response.headers.get("Referrer-Policy") == "no-referrer"

    def test_content_security_policy(self, client):
        response = client.get("/")
        assert "default-src 'none'" in response.headers["Content-Security-Policy"]

    def test_auth_responses_not_cached(self, client):
        """Responses under /auth may carry tokens and must not be stored."""
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.headers.get("Cache-Control") == "no-store"
        assert response.headers.get("X-Content-Type-Options") == "nosniff"

    def test_vary_on_locale(self, client):
        response = client.get("/")
        vary = response.headers["Vary"]
        assert "Accept-Language" in vary
        assert "x-locale" in vary

    def test_hsts_only_over_https(self, client):
        assert "Strict-Transport-Security" not in client.get("/").headers
        response = client.get("/", headers={"X-Forwarded-Proto": "https"})
        assert response.headers["Strict-Transport-Security"].startswith("max-age=")
