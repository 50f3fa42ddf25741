"""Async SQLite connection wrapper with WAL mode, schema init, and write transactions."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from branchreel.db.schema import SCHEMA_SQL

Params = tuple | dict | None


class Transaction:
    """Statement handle for an open write transaction. Never commits on its own."""

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection

    async def execute(self, sql: str, params: Params = None) -> aiosqlite.Cursor:
        return await self._conn.execute(sql, params or ())

    async def executemany(self, sql: str, rows: list[tuple]) -> None:
        if rows:
            await self._conn.executemany(sql, rows)

    async def fetchone(self, sql: str, params: Params = None) -> aiosqlite.Row | None:
        cursor = await self._conn.execute(sql, params or ())
        return await cursor.fetchone()

    async def fetchall(self, sql: str, params: Params = None) -> list[aiosqlite.Row]:
        cursor = await self._conn.execute(sql, params or ())
        return list(await cursor.fetchall())


class Database:
    """Thin async wrapper around aiosqlite with WAL mode and auto-schema.

    All writers share one lock: single statements through execute() and
    multi-statement batches through transaction(). Reads never take it.
    """

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection
        self._write_lock = asyncio.Lock()

    @classmethod
    async def connect(cls, path: str = "branchreel.db") -> "Database":
        """Create a connection with WAL mode, foreign keys, and schema init."""
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute("PRAGMA busy_timeout=5000")
        db = cls(conn)
        await db._ensure_schema()
        return db

    async def _ensure_schema(self) -> None:
        """Create tables if they don't exist. Idempotent."""
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()

    async def execute(self, sql: str, params: Params = None) -> aiosqlite.Cursor:
        """Execute a single SQL statement and commit it."""
        async with self._write_lock:
            try:
                cursor = await self._conn.execute(sql, params or ())
            except BaseException:
                await self._conn.rollback()
                raise
            await self._conn.commit()
            return cursor

    async def fetchone(self, sql: str, params: Params = None) -> aiosqlite.Row | None:
        """Execute and return a single row."""
        cursor = await self._conn.execute(sql, params or ())
        return await cursor.fetchone()

    async def fetchall(self, sql: str, params: Params = None) -> list[aiosqlite.Row]:
        """Execute and return all rows."""
        cursor = await self._conn.execute(sql, params or ())
        return list(await cursor.fetchall())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Run a batch of writes atomically.

        Commits when the block exits cleanly, rolls back on any exception
        and re-raises it.
        """
        async with self._write_lock:
            await self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield Transaction(self._conn)
            except BaseException:
                await self._conn.rollback()
                raise
            await self._conn.commit()

    @asynccontextmanager
    async def settled(self) -> AsyncIterator[None]:
        """Hold the write lock without writing, so reads inside see committed state only."""
        async with self._write_lock:
            yield

    async def close(self) -> None:
        """Close the database connection."""
        await self._conn.close()
