"""
Verification engine.

One attempt walks through:

1.  Validate the identity and code.
2.  Look up the newest unused, unexpired record with that exact code.
3.  Claim it with the store's compare-and-set ``mark_used``.
4.  Retire every other outstanding code for the identity.
5.  Upsert the account flag.

Wrong code, expired code, never-issued and already-used all fail the same
way (NotFoundOrExpired) so the response does not reveal which one applied.
Re-verifying an identity whose flag is already set is allowed: a fresh
valid code succeeds again and simply refreshes the flag.
"""

from __future__ import annotations

import logging

from email_otp.clock import Clock, SystemClock
from email_otp.errors import NotFoundOrExpired
from email_otp.models import VERIFICATION_METHOD, AccountFlag
from email_otp.services.validation import normalize_identity, require_code
from email_otp.stores.base import AccountFlagStore, OtpStore

logger = logging.getLogger(__name__)


class VerificationEngine:
    def __init__(
        self,
        store: OtpStore,
        flags: AccountFlagStore,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._flags = flags
        self._clock = clock or SystemClock()

    async def verify(self, raw_identity: str, raw_code: str) -> AccountFlag:
        identity = normalize_identity(raw_identity)
        code = require_code(raw_code)
        now = self._clock.now()

        record = await self._store.find_active(identity, code, now)
        if record is None:
            logger.info("No active OTP matched for %s", identity)
            raise NotFoundOrExpired()

        if not await self._store.mark_used(record.id, now):
            # another attempt consumed this record between lookup and claim
            logger.warning("OTP %s for %s was already consumed", record.id, identity)
            raise NotFoundOrExpired()

        retired = await self._store.invalidate_outstanding(identity)
        if retired:
            logger.info("Retired %d outstanding OTP(s) for %s", retired, identity)

        flag = await self._flags.upsert_verified(identity, VERIFICATION_METHOD, now)
        logger.info("Verified %s with OTP %s", identity, record.id)
        return flag
