"""
Per-identity issuance policy.

Two rules are checked, in order, before a new code is generated:

  • cooldown – no new code within ``min_resend_seconds`` of the last one
  • quota    – at most ``max_per_hour`` codes in the trailing hour

Both read the OTP history kept in the store; nothing is written here.
This is separate from the per-IP slowapi limits in ``email_otp.rate_limit``,
which protect the HTTP endpoints as a whole.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from email_otp.errors import CooldownActive, QuotaExceeded
from email_otp.stores.base import OtpStore

logger = logging.getLogger(__name__)

QUOTA_WINDOW = timedelta(hours=1)

# smallest step datetime can represent
_RESOLUTION = timedelta(microseconds=1)


class IssuanceRateLimiter:
    def __init__(
        self,
        store: OtpStore,
        *,
        min_resend_seconds: int = 60,
        max_per_hour: int = 10,
    ) -> None:
        self._store = store
        self.min_resend_seconds = min_resend_seconds
        self.max_per_hour = max_per_hour

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.min_resend_seconds)

    def cooldown_start(self, now: datetime) -> datetime:
        """Earliest creation time that still blocks a resend at *now*.

        A code issued exactly ``min_resend_seconds`` ago no longer blocks.
        """
        return now - self.cooldown + _RESOLUTION

    async def check(self, identity: str, now: datetime) -> None:
        """Raise CooldownActive or QuotaExceeded if *identity* may not get a code now."""
        await self.check_cooldown(identity, now)
        await self.check_quota(identity, now)

    async def check_cooldown(self, identity: str, now: datetime) -> None:
        last = await self._store.find_most_recent_since(identity, self.cooldown_start(now))
        if last is None:
            return
        remaining = self.min_resend_seconds - (now - last.created_at).total_seconds()
        wait = max(1, math.ceil(remaining))
        logger.info("Cooldown active for %s (%ds left)", identity, wait)
        raise CooldownActive(wait)

    async def check_quota(self, identity: str, now: datetime) -> None:
        issued = await self._store.count_since(identity, now - QUOTA_WINDOW)
        if issued >= self.max_per_hour:
            logger.warning(
                "Hourly quota reached for %s (%d/%d)", identity, issued, self.max_per_hour
            )
            raise QuotaExceeded()
