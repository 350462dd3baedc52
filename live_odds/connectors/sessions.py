"""SQLite-backed single-use session store."""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta

import aiosqlite

from live_odds.connectors.base import ClaimResult, ClaimStatus, SessionStore
from live_odds.models import SessionRecord, SessionStatus

logger = logging.getLogger(__name__)

_SESSIONS_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    token TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    market_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'UNUSED',
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    used_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_sessions_expiry ON sessions(expires_at);
"""


class SqliteSessionStore(SessionStore):
    """Sessions in SQLite; claiming is a single conditional UPDATE."""

    def __init__(self, db_path: str = ""):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection."""
        if not self.db_path:
            from live_odds.config import settings
            self.db_path = settings.session_db_path
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SESSIONS_SCHEMA)
        await self._db.commit()
        logger.info(f"Session store connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def create(self, user_id: str, market_id: str, ttl: int) -> SessionRecord:
        now = datetime.now(UTC)
        record = SessionRecord(
            token=secrets.token_urlsafe(24),
            user_id=user_id,
            market_id=market_id,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        await self._db.execute(
            """
            INSERT INTO sessions (token, user_id, market_id, status, created_at, expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.token, record.user_id, record.market_id, record.status.value,
                record.created_at.isoformat(), record.expires_at.isoformat(),
            ),
        )
        await self._db.commit()
        logger.info(f"Created session for user {user_id} on market {market_id} (ttl={ttl}s)")
        return record

    async def get(self, token: str) -> SessionRecord | None:
        """Read a session without claiming it. Expired sessions read as missing."""
        cursor = await self._db.execute("SELECT * FROM sessions WHERE token = ?", (token,))
        row = await cursor.fetchone()
        if row is None:
            return None
        record = self._row_to_record(row)
        if record.expires_at <= datetime.now(UTC):
            return None
        return record

    async def claim(self, token: str) -> ClaimResult:
        now = datetime.now(UTC)
        cursor = await self._db.execute(
            """
            UPDATE sessions SET status = 'USED', used_at = ?
            WHERE token = ? AND status = 'UNUSED' AND expires_at > ?
            """,
            (now.isoformat(), token, now.isoformat()),
        )
        await self._db.commit()

        record = await self.get(token)
        if cursor.rowcount == 1 and record is not None:
            logger.info(f"Session claimed: {token[:8]}...")
            return ClaimResult(ClaimStatus.CLAIMED, record)
        if record is None:
            return ClaimResult(ClaimStatus.NOT_FOUND)
        return ClaimResult(ClaimStatus.ALREADY_USED, record)

    async def purge_expired(self) -> int:
        """Delete expired sessions. Returns number of rows removed."""
        cursor = await self._db.execute(
            "DELETE FROM sessions WHERE expires_at <= ?", (datetime.now(UTC).isoformat(),)
        )
        await self._db.commit()
        return cursor.rowcount

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> SessionRecord:
        return SessionRecord(
            token=row["token"],
            user_id=row["user_id"],
            market_id=row["market_id"],
            status=SessionStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
            used_at=datetime.fromisoformat(row["used_at"]) if row["used_at"] else None,
        )
