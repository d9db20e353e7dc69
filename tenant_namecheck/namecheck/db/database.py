"""SQLite database setup and migrations via aiosqlite."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)


def _get_db_path() -> str:
    """Return the database file path (explicit override, dev mode, or /data)."""
    override = os.environ.get("NAMECHECK_DB_PATH")
    if override:
        return override
    if os.environ.get("NAMECHECK_DEV_MODE", "").lower() == "true":
        db_dir = Path(__file__).resolve().parent.parent.parent.parent / "data"
        db_dir.mkdir(exist_ok=True)
        return str(db_dir / "namecheck.db")
    db_dir = Path("/data")
    db_dir.mkdir(exist_ok=True)
    return str(db_dir / "namecheck.db")


SCHEMA_VERSION = 1

MIGRATIONS: dict[int, list[str]] = {
    1: [
        """
        CREATE TABLE IF NOT EXISTS settings (
            key         TEXT PRIMARY KEY,
            value       TEXT NOT NULL,
            updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER NOT NULL
        )
        """,
        "INSERT INTO schema_version (version) VALUES (1)",
    ],
}


class Database:
    """Async SQLite wrapper with migration support."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or _get_db_path()
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database connection and run pending migrations."""
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._run_migrations()

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        """Return the active connection (asserts it exists)."""
        assert self._conn is not None, "Database not connected"
        return self._conn

    async def _run_migrations(self) -> None:
        """Apply any pending schema migrations."""
        try:
            async with self.conn.execute(
                "SELECT version FROM schema_version LIMIT 1"
            ) as cursor:
                row = await cursor.fetchone()
                current = row["version"] if row else 0
        except aiosqlite.OperationalError:
            current = 0

        for version in sorted(MIGRATIONS.keys()):
            if version > current:
                for sql in MIGRATIONS[version]:
                    await self.conn.execute(sql)
                await self.conn.commit()
                logger.info("Applied database migration v%d", version)

    async def get_setting(self, key: str) -> str | None:
        async with self.conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        return row["value"] if row else None

    async def set_setting(self, key: str, value: str) -> None:
        await self.conn.execute(
            """INSERT INTO settings (key, value, updated_at)
               VALUES (?, ?, datetime('now'))
               ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                              updated_at = excluded.updated_at""",
            (key, value),
        )
        await self.conn.commit()
