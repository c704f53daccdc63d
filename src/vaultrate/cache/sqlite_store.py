"""Async SQLite cache store for single-node deployments without Redis.

Uses aiosqlite for non-blocking database operations with WAL mode.
The sorted collection is a (key, member, score) table; member is unique
per key, so re-adding a member moves it to the new score as ZADD does.
"""

import asyncio
import os
from typing import Self

import aiosqlite

from vaultrate.cache.store import CacheStore
from vaultrate.exceptions import ConnectivityError
from vaultrate.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS scored (
    key TEXT NOT NULL,
    member TEXT NOT NULL,
    score INTEGER NOT NULL,
    PRIMARY KEY (key, member)
);

CREATE INDEX IF NOT EXISTS idx_scored_key_score ON scored(key, score);
"""


class SqliteCacheStore(CacheStore):
    """Cache store persisted in a local SQLite file.

    Usage:
        async with SqliteCacheStore("data/rates.db") as store:
            cache = RateCache(store, settings)
    """

    def __init__(self, db_path: str = "data/rates.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the database, configure pragmas and create the schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        try:
            self._connection = await aiosqlite.connect(self._db_path)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")
            await self._connection.executescript(_CREATE_TABLES_SQL)
            await self._connection.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
        except aiosqlite.Error as exc:
            raise ConnectivityError(f"sqlite connect failed: {exc}") from exc

        logger.info("sqlite_store_connected", db_path=self._db_path)

    async def ping(self) -> None:
        if self._connection is None:
            await self.connect()
        try:
            await self.db.execute("SELECT 1")
        except aiosqlite.Error as exc:
            raise ConnectivityError(f"sqlite ping failed: {exc}") from exc

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("sqlite_store_closed", db_path=self._db_path)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

    # ──────────────────────────────────────────────
    # Key/value slot
    # ──────────────────────────────────────────────

    async def get_value(self, key: str) -> str | None:
        row = await self._fetchone("SELECT value FROM kv WHERE key = ?", (key,))
        return row[0] if row is not None else None

    async def set_value(self, key: str, value: str) -> None:
        await self._write(
            [("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value))]
        )

    # ──────────────────────────────────────────────
    # Sorted collection
    # ──────────────────────────────────────────────

    async def add_scored(self, key: str, member: str, score: int) -> None:
        await self._write(
            [
                (
                    "INSERT OR REPLACE INTO scored (key, member, score) VALUES (?, ?, ?)",
                    (key, member, score),
                )
            ]
        )

    async def replace_at_score(self, key: str, member: str, score: int) -> None:
        await self._write(
            [
                ("DELETE FROM scored WHERE key = ? AND score = ?", (key, score)),
                (
                    "INSERT OR REPLACE INTO scored (key, member, score) VALUES (?, ?, ?)",
                    (key, member, score),
                ),
            ]
        )

    async def range_by_score(self, key: str, min_score: int, max_score: int) -> list[str]:
        rows = await self._fetchall(
            "SELECT member FROM scored WHERE key = ? AND score >= ? AND score <= ? "
            "ORDER BY score ASC, member ASC",
            (key, min_score, max_score),
        )
        return [row[0] for row in rows]

    async def remove_below_score(self, key: str, cutoff: int) -> int:
        return await self._write(
            [("DELETE FROM scored WHERE key = ? AND score < ?", (key, cutoff))]
        )

    async def last_scored(self, key: str) -> tuple[str, int] | None:
        row = await self._fetchone(
            "SELECT member, score FROM scored WHERE key = ? "
            "ORDER BY score DESC, member DESC LIMIT 1",
            (key,),
        )
        if row is None:
            return None
        return row[0], int(row[1])

    # ──────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────

    async def _fetchone(self, sql: str, params: tuple) -> tuple | None:
        try:
            cursor = await self.db.execute(sql, params)
            return await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise ConnectivityError(f"sqlite read failed: {exc}") from exc

    async def _fetchall(self, sql: str, params: tuple) -> list[tuple]:
        try:
            cursor = await self.db.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            raise ConnectivityError(f"sqlite read failed: {exc}") from exc

    async def _write(self, statements: list[tuple[str, tuple]]) -> int:
        """Run statements in one transaction, returning total affected rows."""
        affected = 0
        async with self._write_lock:
            try:
                for sql, params in statements:
                    cursor = await self.db.execute(sql, params)
                    affected += max(cursor.rowcount, 0)
                await self.db.commit()
            except aiosqlite.Error as exc:
                await self.db.rollback()
                raise ConnectivityError(f"sqlite write failed: {exc}") from exc
        return affected
