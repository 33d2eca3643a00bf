"""
FastAPI application factory for the email OTP service.

``create_app`` wires the configured stores, mail sender and services
together; the lifespan opens the database (refusing to start without it)
and runs the expiry sweeper in the background.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from email_otp.clock import Clock, SystemClock
from email_otp.config import Settings, load_settings
from email_otp.errors import (
    CooldownActive,
    InternalError,
    InvalidInput,
    OtpError,
    StorageFailure,
)
from email_otp.rate_limit import limiter, rate_limit_exceeded_handler
from email_otp.routers import health, otp
from email_otp.services.email import MailSender, build_mail_sender
from email_otp.services.issuance import OtpIssuer
from email_otp.services.rate_limiter import IssuanceRateLimiter
from email_otp.services.sweeper import ExpirySweeper
from email_otp.services.verification import VerificationEngine
from email_otp.stores.memory import InMemoryAccountFlagStore, InMemoryOtpStore
from email_otp.stores.sqlite import Database, SqliteAccountFlagStore, SqliteOtpStore

logger = logging.getLogger(__name__)


async def _open_stores(settings: Settings):
    if settings.storage == "memory":
        logger.warning(
            "Using in-memory OTP storage; state is per-process and lost on restart"
        )
        return None, InMemoryOtpStore(), InMemoryAccountFlagStore()

    database = Database(settings.db_path)
    try:
        await database.connect()
    except StorageFailure:
        logger.critical("Cannot open OTP database at %s, refusing to start", settings.db_path)
        raise
    return database, SqliteOtpStore(database), SqliteAccountFlagStore(database)


def create_app(
    settings: Settings | None = None,
    *,
    mail_sender: MailSender | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    clock = clock or SystemClock()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database, otp_store, flag_store = await _open_stores(settings)

        rate_limiter = IssuanceRateLimiter(
            otp_store,
            min_resend_seconds=settings.min_resend_seconds,
            max_per_hour=settings.max_per_hour,
        )
        app.state.otp_store = otp_store
        app.state.flag_store = flag_store
        app.state.issuer = OtpIssuer(
            otp_store,
            rate_limiter,
            mail_sender or build_mail_sender(settings),
            ttl_minutes=settings.ttl_minutes,
            mail_timeout_seconds=settings.mail_timeout_seconds,
            clock=clock,
        )
        app.state.verifier = VerificationEngine(otp_store, flag_store, clock=clock)

        sweeper = ExpirySweeper(
            otp_store, interval=settings.sweep_interval_seconds, clock=clock
        )
        await sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()
            if database is not None:
                await database.close()

    app = FastAPI(
        title="Email OTP Service",
        description="Issues and verifies one-time passcodes sent by email",
        version=health.VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.exception_handler(OtpError)
    async def _otp_error_handler(request: Request, exc: OtpError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s on %s %s", exc.kind, request.method, request.url.path,
                exc_info=exc.__cause__ or exc,
            )
        headers = None
        if isinstance(exc, CooldownActive):
            headers = {"Retry-After": str(exc.wait_seconds)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=InvalidInput("Missing params").to_dict(),
        )

    @app.exception_handler(Exception)
    async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
        )
        error = InternalError()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    app.include_router(health.router)
    app.include_router(otp.router)
    return app
