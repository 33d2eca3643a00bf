"""
Shared test fixtures.

Provides:
  • a manual clock and a recording mail sender
  • OTP / account-flag stores, parametrized over the in-memory and the
    SQLite implementations so store-facing tests run against both
  • ready-wired services (rate limiter, issuer, verification engine)
  • a FastAPI TestClient running the full lifespan, with the per-IP
    slowapi limits switched off
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from email_otp.main import create_app
from email_otp.rate_limit import limiter
from email_otp.services.issuance import OtpIssuer
from email_otp.services.rate_limiter import IssuanceRateLimiter
from email_otp.services.verification import VerificationEngine
from email_otp.stores.memory import InMemoryAccountFlagStore, InMemoryOtpStore
from email_otp.stores.sqlite import Database, SqliteAccountFlagStore, SqliteOtpStore
from tests.mocks.models import make_settings
from tests.mocks.services import ManualClock, RecordingMailSender


# ── Collaborators ──────────────────────────────────────────────────────────


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def mail_sender() -> RecordingMailSender:
    return RecordingMailSender()


# ── Stores ─────────────────────────────────────────────────────────────────


@pytest.fixture()
async def database(tmp_path):
    db = Database(str(tmp_path / "test.db"))
    await db.connect()
    yield db
    await db.close()


@pytest.fixture(params=["memory", "sqlite"])
async def stores(request, tmp_path):
    """(otp_store, flag_store) for each backend."""
    if request.param == "memory":
        yield InMemoryOtpStore(), InMemoryAccountFlagStore()
        return

    db = Database(str(tmp_path / "stores.db"))
    await db.connect()
    yield SqliteOtpStore(db), SqliteAccountFlagStore(db)
    await db.close()


@pytest.fixture()
def otp_store(stores):
    return stores[0]


@pytest.fixture()
def flag_store(stores):
    return stores[1]


# ── Services ───────────────────────────────────────────────────────────────


@pytest.fixture()
def rate_limiter(otp_store) -> IssuanceRateLimiter:
    return IssuanceRateLimiter(otp_store, min_resend_seconds=60, max_per_hour=10)


@pytest.fixture()
def issuer(otp_store, rate_limiter, mail_sender, clock) -> OtpIssuer:
    return OtpIssuer(
        otp_store,
        rate_limiter,
        mail_sender,
        ttl_minutes=5,
        mail_timeout_seconds=1.0,
        clock=clock,
    )


@pytest.fixture()
def verifier(otp_store, flag_store, clock) -> VerificationEngine:
    return VerificationEngine(otp_store, flag_store, clock=clock)


# ── HTTP ───────────────────────────────────────────────────────────────────


@pytest.fixture()
def _no_ip_limits(monkeypatch):
    monkeypatch.setattr(limiter, "enabled", False)


@pytest.fixture()
def settings():
    return make_settings()


@pytest.fixture()
def client(_no_ip_limits, settings, mail_sender, clock):
    """
    TestClient over in-memory storage with a recording mail sender.

    Uses a context manager so the lifespan runs (stores, sweeper).
    """
    app = create_app(settings, mail_sender=mail_sender, clock=clock)
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
