"""
Expiry sweeper: purges stale OTP records in the background.

Queries already ignore expired codes, so this only keeps the table small.
Records are kept for the whole quota window even after they expire,
otherwise the hourly quota would forget codes issued earlier in the hour.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from email_otp.clock import Clock, SystemClock
from email_otp.services.rate_limiter import QUOTA_WINDOW
from email_otp.stores.base import OtpStore

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        store: OtpStore,
        *,
        interval: float = 300.0,
        clock: Clock | None = None,
        name: str = "otp-sweeper",
    ) -> None:
        self._store = store
        self._interval = interval
        self._clock = clock or SystemClock()
        self._name = name
        self._task: asyncio.Task[None] | None = None

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.info("%s started (every %ds)", self._name, self._interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("%s stopped", self._name)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Work ───────────────────────────────────────────────────────────

    async def sweep(self) -> int:
        """Delete expired records older than the quota window; return how many."""
        now = self._clock.now()
        purged = await self._store.purge_expired(now, now - QUOTA_WINDOW)
        if purged:
            logger.info("Purged %d expired OTP record(s)", purged)
        return purged

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("%s tick failed, will retry", self._name)
