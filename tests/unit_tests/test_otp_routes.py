"""Tests for the /api/send-otp and /api/verify-otp endpoints."""

import pytest
from fastapi.testclient import TestClient

from email_otp.errors import StorageFailure
from email_otp.main import create_app
from email_otp.services.verification import VerificationEngine
from tests.mocks.models import INVALID_EMAILS, USER_EMAIL, make_settings
from tests.mocks.services import FailingMailSender


def _send(client, identity=USER_EMAIL):
    return client.post("/api/send-otp", json={"identity": identity})


def _verify(client, code, identity=USER_EMAIL):
    return client.post("/api/verify-otp", json={"identity": identity, "code": code})


class TestSendOtp:
    def test_send_success(self, client, mail_sender):
        resp = _send(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["message"] == "OTP sent"
        assert data["expires_in_seconds"] == 300
        assert "code" not in data

        assert len(mail_sender.sent) == 1
        assert mail_sender.sent[0].to_email == USER_EMAIL

    def test_email_alias_accepted(self, client, mail_sender):
        resp = client.post("/api/send-otp", json={"email": USER_EMAIL})
        assert resp.status_code == 200
        assert mail_sender.sent[0].to_email == USER_EMAIL

    @pytest.mark.parametrize("identity", INVALID_EMAILS)
    def test_invalid_email(self, client, mail_sender, identity):
        resp = _send(client, identity)
        assert resp.status_code == 400
        assert resp.json() == {
            "success": False,
            "error": "invalid_input",
            "message": "Invalid email",
        }
        assert mail_sender.sent == []

    def test_missing_field_is_400(self, client):
        resp = client.post("/api/send-otp", json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"

    def test_cooldown(self, client, clock):
        assert _send(client).status_code == 200
        clock.advance(seconds=15)

        resp = _send(client)
        assert resp.status_code == 429
        data = resp.json()
        assert data["error"] == "cooldown_active"
        assert data["wait_seconds"] == 45
        assert data["message"] == "Please wait 45s before resending"
        assert resp.headers["Retry-After"] == "45"

    def test_quota(self, _no_ip_limits, mail_sender, clock):
        app = create_app(
            make_settings(max_per_hour=3), mail_sender=mail_sender, clock=clock
        )
        with TestClient(app, raise_server_exceptions=False) as client:
            for _ in range(3):
                assert _send(client).status_code == 200
                clock.advance(seconds=61)

            resp = _send(client)
        assert resp.status_code == 429
        assert resp.json()["error"] == "quota_exceeded"
        assert "wait_seconds" not in resp.json()

    def test_transport_failure(self, _no_ip_limits, clock):
        sender = FailingMailSender()
        app = create_app(make_settings(), mail_sender=sender, clock=clock)
        with TestClient(app, raise_server_exceptions=False) as client:
            resp = _send(client)
            assert resp.status_code == 500
            assert resp.json() == {
                "success": False,
                "error": "transport_failure",
                "message": "Send failed",
            }

            # the persisted code is still usable
            verify = _verify(client, sender.last_code)
            assert verify.status_code == 200


class TestExposeCode:
    def test_code_echoed_in_development_when_enabled(self, _no_ip_limits, mail_sender, clock):
        app = create_app(make_settings(expose_code=True), mail_sender=mail_sender, clock=clock)
        with TestClient(app) as client:
            resp = _send(client)
        assert resp.json()["code"] == mail_sender.last_code

    def test_code_never_echoed_in_production(self, _no_ip_limits, mail_sender, clock):
        app = create_app(
            make_settings(expose_code=True, environment="production"),
            mail_sender=mail_sender,
            clock=clock,
        )
        with TestClient(app) as client:
            resp = _send(client)
        assert resp.status_code == 200
        assert "code" not in resp.json()


class TestVerifyOtp:
    def test_verify_success(self, client, mail_sender):
        _send(client)
        resp = _verify(client, mail_sender.last_code)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Verified", "verified": True}

    def test_verify_sets_account_flag(self, client, mail_sender):
        _send(client)
        _verify(client, mail_sender.last_code)
        flag = client.app.state.flag_store.peek(USER_EMAIL)
        assert flag.verified is True
        assert flag.method == "email"

    def test_legacy_field_names_and_numeric_code(self, client, mail_sender):
        _send(client)
        resp = client.post(
            "/api/verify-otp",
            json={"email": USER_EMAIL, "otp": int(mail_sender.last_code)},
        )
        assert resp.status_code == 200

    def test_wrong_code(self, client, mail_sender):
        _send(client)
        wrong = "000000" if mail_sender.last_code != "000000" else "111111"
        resp = _verify(client, wrong)
        assert resp.status_code == 400
        assert resp.json() == {
            "success": False,
            "error": "not_found_or_expired",
            "message": "Invalid or expired OTP",
        }

    def test_expired_code_same_response_as_wrong_code(self, client, mail_sender, clock):
        _send(client)
        clock.advance(minutes=6)
        resp = _verify(client, mail_sender.last_code)
        assert resp.status_code == 400
        assert resp.json()["error"] == "not_found_or_expired"
        assert resp.json()["message"] == "Invalid or expired OTP"

    def test_code_is_single_use(self, client, mail_sender):
        _send(client)
        code = mail_sender.last_code
        assert _verify(client, code).status_code == 200
        second = _verify(client, code)
        assert second.status_code == 400
        assert second.json()["error"] == "not_found_or_expired"

    @pytest.mark.parametrize(
        "body",
        [{}, {"identity": USER_EMAIL}, {"code": "123456"}, {"identity": USER_EMAIL, "code": ""}],
    )
    def test_missing_params(self, client, body):
        resp = client.post("/api/verify-otp", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"

    def test_storage_failure_is_generic_500(self, client):
        class BrokenStore:
            async def find_active(self, identity, code, now):
                raise StorageFailure() from OSError("disk I/O error at /var/lib/otp.db")

        client.app.state.verifier = VerificationEngine(
            BrokenStore(), client.app.state.flag_store
        )
        resp = _verify(client, "123456")
        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "error": "storage_failure",
            "message": "Internal storage error",
        }

    def test_unexpected_error_keeps_json_shape(self, client):
        class CorruptStore:
            async def find_active(self, identity, code, now):
                raise ValueError("Invalid isoformat string: 'garbage'")

        client.app.state.verifier = VerificationEngine(
            CorruptStore(), client.app.state.flag_store
        )
        resp = _verify(client, "123456")
        assert resp.status_code == 500
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json() == {
            "success": False,
            "error": "internal_error",
            "message": "Internal server error",
        }
        assert "isoformat" not in resp.text


class TestStartup:
    def test_unusable_database_aborts_startup(self, _no_ip_limits, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        app = create_app(
            make_settings(storage="sqlite", db_path=str(blocker / "otp.db"))
        )
        with pytest.raises(StorageFailure):
            with TestClient(app):
                pass

    def test_sqlite_backend_serves_requests(self, _no_ip_limits, tmp_path, mail_sender, clock):
        app = create_app(
            make_settings(storage="sqlite", db_path=str(tmp_path / "otp.db")),
            mail_sender=mail_sender,
            clock=clock,
        )
        with TestClient(app) as client:
            assert _send(client).status_code == 200
            assert _verify(client, mail_sender.last_code).status_code == 200
        assert (tmp_path / "otp.db").exists()
