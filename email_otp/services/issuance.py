"""
OTP issuance: validate, rate-limit, generate, persist, deliver.

Steps run strictly in that order within one request.  The record is
persisted before the mail goes out and is never rolled back: if delivery
fails the caller gets TransportFailure, but the code stays valid and still
counts toward the cooldown and the hourly quota.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from email_otp.clock import Clock, SystemClock
from email_otp.errors import CooldownActive, TransportFailure
from email_otp.models import IssuedOtp
from email_otp.services.email import MailSender, OtpMessage
from email_otp.services.generator import generate_code
from email_otp.services.rate_limiter import IssuanceRateLimiter
from email_otp.services.validation import normalize_identity
from email_otp.stores.base import OtpStore

logger = logging.getLogger(__name__)


class OtpIssuer:
    def __init__(
        self,
        store: OtpStore,
        rate_limiter: IssuanceRateLimiter,
        mail_sender: MailSender,
        *,
        ttl_minutes: int = 5,
        mail_timeout_seconds: float = 10.0,
        clock: Clock | None = None,
        generate=generate_code,
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._mail_sender = mail_sender
        self._ttl = timedelta(minutes=ttl_minutes)
        self._ttl_minutes = ttl_minutes
        self._mail_timeout = mail_timeout_seconds
        self._clock = clock or SystemClock()
        self._generate = generate

    @property
    def ttl_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    async def issue(self, raw_identity: str) -> IssuedOtp:
        identity = normalize_identity(raw_identity)
        now = self._clock.now()

        await self._rate_limiter.check(identity, now)

        code = self._generate()
        expires_at = now + self._ttl
        record_id = await self._store.insert(
            identity,
            code,
            now,
            expires_at,
            unless_created_since=self._rate_limiter.cooldown_start(now),
        )
        if record_id is None:
            # a concurrent request won the cooldown window after our check
            logger.info("Lost issuance race for %s", identity)
            raise CooldownActive(self._rate_limiter.min_resend_seconds)

        logger.info("Issued OTP %s for %s (expires %s)", record_id, identity, expires_at.isoformat())

        await self._deliver(OtpMessage(identity, code, self._ttl_minutes))

        return IssuedOtp(
            record_id=record_id,
            identity=identity,
            code=code,
            expires_at=expires_at,
        )

    async def _deliver(self, message: OtpMessage) -> None:
        try:
            await asyncio.wait_for(self._mail_sender.send(message), self._mail_timeout)
        except TransportFailure:
            raise
        except asyncio.TimeoutError as exc:
            logger.error(
                "Mail send to %s timed out after %ss", message.to_email, self._mail_timeout
            )
            raise TransportFailure() from exc
        except Exception as exc:
            logger.exception("Mail send to %s failed", message.to_email)
            raise TransportFailure() from exc
