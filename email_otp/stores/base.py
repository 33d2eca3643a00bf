"""
Storage interfaces for OTP records and account flags.

The services only ever talk to these protocols, so the verification engine
and rate limiter can run against the in-memory implementation in tests and
against SQLite in production.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from email_otp.models import AccountFlag, OtpRecord


class OtpStore(Protocol):
    async def insert(
        self,
        identity: str,
        code: str,
        created_at: datetime,
        expires_at: datetime,
        *,
        unless_created_since: datetime | None = None,
    ) -> str | None:
        """
        Append a record and return its id.

        With *unless_created_since* the insert only happens if no record for
        the identity was created at or after that instant; ``None`` is
        returned when it is skipped.
        """
        ...

    async def find_active(
        self, identity: str, code: str, now: datetime
    ) -> OtpRecord | None:
        """Newest unused, unexpired record whose code equals *code* exactly."""
        ...

    async def count_since(self, identity: str, since: datetime) -> int: ...

    async def find_most_recent_since(
        self, identity: str, since: datetime
    ) -> OtpRecord | None: ...

    async def mark_used(self, record_id: str, verified_at: datetime) -> bool:
        """Flip ``used`` from false to true. Only the winning caller gets True."""
        ...

    async def invalidate_outstanding(self, identity: str) -> int:
        """Mark every remaining unused record for *identity* as used."""
        ...

    async def purge_expired(self, now: datetime, retain_since: datetime) -> int:
        """Delete records that expired and were created before *retain_since*."""
        ...


class AccountFlagStore(Protocol):
    async def upsert_verified(
        self, identity: str, method: str, updated_at: datetime
    ) -> AccountFlag: ...

    async def get(self, identity: str) -> AccountFlag | None: ...
