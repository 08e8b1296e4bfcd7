"""Async SQLite connection manager for teamdesk persistence."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

log = structlog.get_logger(__name__)

_PRAGMA_WAL = "PRAGMA journal_mode = WAL"
_PRAGMA_FK = "PRAGMA foreign_keys = ON"


class Transaction:
    """Statement helpers bound to an open ``BEGIN IMMEDIATE`` block."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        async with self._conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def execute_write(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        async with self._conn.execute(sql, params) as cursor:
            return cursor.rowcount if cursor.rowcount >= 0 else 0

    async def execute_many(self, sql: str, params: list[tuple[Any, ...]]) -> None:
        await self._conn.executemany(sql, params)


class DatabaseManager:
    """Manages an aiosqlite connection with WAL mode and foreign keys enabled.

    Opened once at process start and handed to the store by reference. Every
    statement goes through one lock, so a reader never observes the inside of
    another coroutine's transaction on the shared connection.

    Usage::

        db = DatabaseManager(".teamdesk/teamdesk.db")
        await db.initialize()
        rows = await db.execute("SELECT * FROM projects")
        await db.close()
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        log.debug("db_manager_created", path=str(self._db_path))

    @property
    def path(self) -> Path:
        return self._db_path

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open the connection, enable pragmas, and run migrations."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode: transactions are opened explicitly by transaction().
        self._conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute(_PRAGMA_WAL)
        await self._conn.execute(_PRAGMA_FK)

        from teamdesk.persistence.migrations import run_migrations
        await run_migrations(self)

        log.info("db_initialized", path=str(self._db_path))

    async def close(self) -> None:
        """Close the underlying connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            log.debug("db_closed", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    async def execute(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """Execute a SELECT statement and return rows as plain dicts."""
        conn = self._require_connection()
        async with self._lock:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]

    async def execute_write(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Execute an INSERT / UPDATE / DELETE / DDL statement.

        Returns the number of rows affected (0 for DDL).
        """
        conn = self._require_connection()
        async with self._lock:
            async with conn.execute(sql, params) as cursor:
                return cursor.rowcount if cursor.rowcount >= 0 else 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """All-or-nothing block: commits on clean exit, rolls back on any error."""
        conn = self._require_connection()
        async with self._lock:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield Transaction(conn)
            except BaseException:
                await conn.execute("ROLLBACK")
                log.debug("transaction_rolled_back", path=str(self._db_path))
                raise
            await conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError(
                "DatabaseManager is not initialized. Call await db.initialize() first."
            )
        return self._conn
