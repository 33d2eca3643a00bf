"""Tests for the per-IP slowapi limits in front of the OTP endpoints."""

import pytest
from fastapi.testclient import TestClient

from email_otp.main import create_app
from email_otp.rate_limit import limiter
from tests.mocks.models import make_settings


class TestRateLimiting:
    """Verify that rate limiting kicks in for sensitive endpoints."""

    @pytest.fixture()
    def limited_client(self, monkeypatch, mail_sender, clock):
        """
        TestClient with rate limiting **enabled** (unlike the default
        `client` fixture which disables it for convenience).
        """
        monkeypatch.setattr(limiter, "enabled", True)
        # Reset in-memory state so previous tests don't pollute counts
        limiter.reset()

        app = create_app(
            make_settings(max_per_hour=100), mail_sender=mail_sender, clock=clock
        )
        with TestClient(app, raise_server_exceptions=False) as tc:
            yield tc

        limiter.reset()

    def test_send_otp_rate_limit(self, limited_client, clock):
        """POST /api/send-otp is limited to 5 requests/minute per client."""
        for i in range(5):
            resp = limited_client.post(
                "/api/send-otp",
                json={"identity": f"user{i}@example.com"},
            )
            assert resp.status_code == 200, f"Request {i + 1} should succeed"

        # 6th request should be rate-limited, even for a fresh address
        resp = limited_client.post(
            "/api/send-otp",
            json={"identity": "fresh@example.com"},
        )
        assert resp.status_code == 429
        data = resp.json()
        assert data["error"] == "rate_limited"
        assert "Rate limit exceeded" in data["message"]

    def test_verify_otp_rate_limit(self, limited_client):
        """POST /api/verify-otp is limited to 10 requests/minute per client."""
        for i in range(10):
            resp = limited_client.post(
                "/api/verify-otp",
                json={"identity": "test@example.com", "code": "000000"},
            )
            # 400 (wrong code) is fine – we just need it not to be 429 yet
            assert resp.status_code == 400, f"Request {i + 1} should not be rate-limited"

        resp = limited_client.post(
            "/api/verify-otp",
            json={"identity": "test@example.com", "code": "000000"},
        )
        assert resp.status_code == 429

    def test_health_not_limited_at_low_volume(self, limited_client):
        for _ in range(10):
            resp = limited_client.get("/api/health")
            assert resp.status_code == 200
