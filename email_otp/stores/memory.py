"""
In-memory stores.

Degraded mode for single-instance deployments and tests: all state lives
in the process and is lost on restart.  None of the methods suspend
between reading and writing, so each call is atomic with respect to other
coroutines on the same event loop.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from uuid import uuid4

from email_otp.models import AccountFlag, OtpRecord


class InMemoryOtpStore:
    def __init__(self) -> None:
        # insertion order doubles as issue order
        self._records: dict[str, OtpRecord] = {}

    def _for_identity(self, identity: str) -> list[OtpRecord]:
        return [r for r in self._records.values() if r.identity == identity]

    async def insert(
        self,
        identity: str,
        code: str,
        created_at: datetime,
        expires_at: datetime,
        *,
        unless_created_since: datetime | None = None,
    ) -> str | None:
        if unless_created_since is not None and any(
            r.created_at >= unless_created_since for r in self._for_identity(identity)
        ):
            return None
        record_id = str(uuid4())
        self._records[record_id] = OtpRecord(
            id=record_id,
            identity=identity,
            code=code,
            created_at=created_at,
            expires_at=expires_at,
        )
        return record_id

    async def find_active(
        self, identity: str, code: str, now: datetime
    ) -> OtpRecord | None:
        candidates = [
            r for r in self._for_identity(identity)
            if r.code == code and r.is_active(now)
        ]
        if not candidates:
            return None
        # max() keeps the first of equal keys; reverse so ties go to the latest insert
        return max(reversed(candidates), key=lambda r: r.created_at)

    async def count_since(self, identity: str, since: datetime) -> int:
        return sum(1 for r in self._for_identity(identity) if r.created_at >= since)

    async def find_most_recent_since(
        self, identity: str, since: datetime
    ) -> OtpRecord | None:
        recent = [r for r in self._for_identity(identity) if r.created_at >= since]
        if not recent:
            return None
        return max(reversed(recent), key=lambda r: r.created_at)

    async def mark_used(self, record_id: str, verified_at: datetime) -> bool:
        record = self._records.get(record_id)
        if record is None or record.used:
            return False
        self._records[record_id] = dataclasses.replace(
            record, used=True, verified_at=verified_at
        )
        return True

    async def invalidate_outstanding(self, identity: str) -> int:
        count = 0
        for record in self._for_identity(identity):
            if not record.used:
                self._records[record.id] = dataclasses.replace(record, used=True)
                count += 1
        return count

    async def purge_expired(self, now: datetime, retain_since: datetime) -> int:
        stale = [
            r.id for r in self._records.values()
            if r.expires_at < now and r.created_at < retain_since
        ]
        for record_id in stale:
            del self._records[record_id]
        return len(stale)

    # ── Introspection ──────────────────────────────────────────────────

    async def get(self, record_id: str) -> OtpRecord | None:
        return self._records.get(record_id)

    def __len__(self) -> int:
        return len(self._records)


class InMemoryAccountFlagStore:
    def __init__(self) -> None:
        self._flags: dict[str, AccountFlag] = {}

    async def upsert_verified(
        self, identity: str, method: str, updated_at: datetime
    ) -> AccountFlag:
        flag = AccountFlag(
            identity=identity, verified=True, method=method, updated_at=updated_at
        )
        self._flags[identity] = flag
        return flag

    async def get(self, identity: str) -> AccountFlag | None:
        return self._flags.get(identity)

    def peek(self, identity: str) -> AccountFlag | None:
        """Synchronous lookup, for callers outside the event loop."""
        return self._flags.get(identity)
