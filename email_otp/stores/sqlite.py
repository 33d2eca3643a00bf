"""
SQLite storage layer using aiosqlite.

Stores OTP records and account verification flags.
Tables are created automatically on connect.

Timestamps are stored as fixed-width UTC ISO-8601 strings (always with
microseconds) so that comparing the strings compares the instants.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import aiosqlite

from email_otp.errors import StorageFailure
from email_otp.models import AccountFlag, OtpRecord

logger = logging.getLogger(__name__)


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS otp_records (
    id              TEXT PRIMARY KEY,
    identity        TEXT NOT NULL,
    code            TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    expires_at      TEXT NOT NULL,
    used            INTEGER NOT NULL DEFAULT 0,
    verified_at     TEXT
);

CREATE INDEX IF NOT EXISTS idx_otp_identity_created ON otp_records(identity, created_at);
CREATE INDEX IF NOT EXISTS idx_otp_expires ON otp_records(expires_at);

CREATE TABLE IF NOT EXISTS account_flags (
    identity        TEXT PRIMARY KEY,
    verified        INTEGER NOT NULL DEFAULT 0,
    method          TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""


# ── Helpers ───────────────────────────────────────────────────────────────


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    return datetime.fromisoformat(raw)


def _row_to_record(row: aiosqlite.Row) -> OtpRecord:
    """Convert a database row to an OtpRecord."""
    return OtpRecord(
        id=row["id"],
        identity=row["identity"],
        code=row["code"],
        created_at=_from_iso(row["created_at"]),
        expires_at=_from_iso(row["expires_at"]),
        used=bool(row["used"]),
        verified_at=_from_iso(row["verified_at"]),
    )


def _row_to_flag(row: aiosqlite.Row) -> AccountFlag:
    return AccountFlag(
        identity=row["identity"],
        verified=bool(row["verified"]),
        method=row["method"],
        updated_at=_from_iso(row["updated_at"]),
    )


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate driver errors into StorageFailure, keeping the cause for logs."""
    try:
        yield
    except aiosqlite.Error as exc:
        logger.error("SQLite %s failed: %s", operation, exc)
        raise StorageFailure() from exc


# ══════════════════════════════════════════════════════════════════════════
#                    CONNECTION
# ══════════════════════════════════════════════════════════════════════════


class Database:
    """Owns the aiosqlite connection shared by both repositories."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database and create tables if they don't exist."""
        db_path = Path(self._path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            with _storage_errors("connect"):
                self._conn = await aiosqlite.connect(str(db_path))
                self._conn.row_factory = aiosqlite.Row  # dict-like rows
                await self._conn.execute("PRAGMA journal_mode=WAL")
                await self._conn.executescript(_SCHEMA)
                await self._conn.commit()
        except OSError as exc:
            raise StorageFailure(f"Cannot open database at {db_path}") from exc
        logger.info("Database initialized at %s", db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Database connection closed")

    @property
    def conn(self) -> aiosqlite.Connection:
        """Return the active connection (``connect()`` must have run)."""
        if self._conn is None:
            raise StorageFailure("Database not initialized")
        return self._conn


# ══════════════════════════════════════════════════════════════════════════
#                    OTP RECORD REPOSITORY
# ══════════════════════════════════════════════════════════════════════════


class SqliteOtpStore:
    def __init__(self, database: Database) -> None:
        self._database = database

    async def insert(
        self,
        identity: str,
        code: str,
        created_at: datetime,
        expires_at: datetime,
        *,
        unless_created_since: datetime | None = None,
    ) -> str | None:
        """Insert a new record; conditional when *unless_created_since* is set."""
        db = self._database.conn
        record_id = str(uuid4())
        values = (record_id, identity, code, _iso(created_at), _iso(expires_at))

        with _storage_errors("insert"):
            if unless_created_since is None:
                cur = await db.execute(
                    """
                    INSERT INTO otp_records (id, identity, code, created_at, expires_at, used)
                    VALUES (?, ?, ?, ?, ?, 0)
                    """,
                    values,
                )
            else:
                # single statement, so the check and the write cannot interleave
                cur = await db.execute(
                    """
                    INSERT INTO otp_records (id, identity, code, created_at, expires_at, used)
                    SELECT ?, ?, ?, ?, ?, 0
                    WHERE NOT EXISTS (
                        SELECT 1 FROM otp_records
                        WHERE identity = ? AND created_at >= ?
                    )
                    """,
                    (*values, identity, _iso(unless_created_since)),
                )
            await db.commit()

        return record_id if cur.rowcount == 1 else None

    async def find_active(
        self, identity: str, code: str, now: datetime
    ) -> OtpRecord | None:
        db = self._database.conn
        with _storage_errors("find_active"):
            async with db.execute(
                """
                SELECT * FROM otp_records
                WHERE identity = ? AND code = ? AND used = 0 AND expires_at >= ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (identity, code, _iso(now)),
            ) as cur:
                row = await cur.fetchone()
        return _row_to_record(row) if row else None

    async def count_since(self, identity: str, since: datetime) -> int:
        db = self._database.conn
        with _storage_errors("count_since"):
            async with db.execute(
                "SELECT COUNT(*) FROM otp_records WHERE identity = ? AND created_at >= ?",
                (identity, _iso(since)),
            ) as cur:
                row = await cur.fetchone()
        return int(row[0])

    async def find_most_recent_since(
        self, identity: str, since: datetime
    ) -> OtpRecord | None:
        db = self._database.conn
        with _storage_errors("find_most_recent_since"):
            async with db.execute(
                """
                SELECT * FROM otp_records
                WHERE identity = ? AND created_at >= ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (identity, _iso(since)),
            ) as cur:
                row = await cur.fetchone()
        return _row_to_record(row) if row else None

    async def mark_used(self, record_id: str, verified_at: datetime) -> bool:
        """Compare-and-set on ``used``. Returns True only if this call flipped it."""
        db = self._database.conn
        with _storage_errors("mark_used"):
            cur = await db.execute(
                "UPDATE otp_records SET used = 1, verified_at = ? WHERE id = ? AND used = 0",
                (_iso(verified_at), record_id),
            )
            await db.commit()
        return cur.rowcount == 1

    async def invalidate_outstanding(self, identity: str) -> int:
        db = self._database.conn
        with _storage_errors("invalidate_outstanding"):
            cur = await db.execute(
                "UPDATE otp_records SET used = 1 WHERE identity = ? AND used = 0",
                (identity,),
            )
            await db.commit()
        return cur.rowcount

    async def purge_expired(self, now: datetime, retain_since: datetime) -> int:
        db = self._database.conn
        with _storage_errors("purge_expired"):
            cur = await db.execute(
                "DELETE FROM otp_records WHERE expires_at < ? AND created_at < ?",
                (_iso(now), _iso(retain_since)),
            )
            await db.commit()
        return cur.rowcount

    async def get(self, record_id: str) -> OtpRecord | None:
        """Fetch a single record by ID."""
        db = self._database.conn
        with _storage_errors("get"):
            async with db.execute(
                "SELECT * FROM otp_records WHERE id = ?", (record_id,)
            ) as cur:
                row = await cur.fetchone()
        return _row_to_record(row) if row else None


# ══════════════════════════════════════════════════════════════════════════
#                    ACCOUNT FLAG REPOSITORY
# ══════════════════════════════════════════════════════════════════════════


class SqliteAccountFlagStore:
    def __init__(self, database: Database) -> None:
        self._database = database

    async def upsert_verified(
        self, identity: str, method: str, updated_at: datetime
    ) -> AccountFlag:
        db = self._database.conn
        with _storage_errors("upsert_verified"):
            await db.execute(
                """
                INSERT INTO account_flags (identity, verified, method, updated_at)
                VALUES (?, 1, ?, ?)
                ON CONFLICT(identity) DO UPDATE SET
                    verified = 1,
                    method = excluded.method,
                    updated_at = excluded.updated_at
                """,
                (identity, method, _iso(updated_at)),
            )
            await db.commit()
        return AccountFlag(
            identity=identity, verified=True, method=method, updated_at=updated_at
        )

    async def get(self, identity: str) -> AccountFlag | None:
        db = self._database.conn
        with _storage_errors("get_flag"):
            async with db.execute(
                "SELECT * FROM account_flags WHERE identity = ?", (identity,)
            ) as cur:
                row = await cur.fetchone()
        return _row_to_flag(row) if row else None
