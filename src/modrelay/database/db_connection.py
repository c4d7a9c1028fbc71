"""
Database connection management: one long-lived aiosqlite connection.

Design rationale
----------------
SQLite performs best with a **single long-lived connection** rather than
opening/closing a connection per operation: pragmas are applied once and the
page cache stays warm.

Concurrency model
-----------------
SQLite is single-writer. Writes go through ``transaction()``, which holds a
semaphore so coroutines queue up instead of fighting the busy timeout. Reads
go through ``read()`` and run concurrently under WAL.

The semaphore serialises statements, not workflows. Two moderator actions can
still interleave between their reads and writes; the stores rely on unique
constraints and conditional updates for that.

Failure model
-------------
Operational failures (database locked past the timeout, disk errors, a closed
connection) surface as :class:`~modrelay.errors.StoreUnavailable`. Constraint
violations are left as ``aiosqlite.IntegrityError`` for the store to interpret.
Nothing is retried here.

Usage
-----
    manager = ConnectionManager()
    await manager.open(path)

    async with manager.read() as conn:
        cursor = await conn.execute("SELECT ...")

    async with manager.transaction() as conn:
        await conn.execute("INSERT ...")
        # commits on clean exit, rolls back on exception

    await manager.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from modrelay.errors import StoreUnavailable
from modrelay.util.logger import get_logger

logger = get_logger("database_connection")

# ── Pragmas applied once when the connection is opened ──────────────────────
_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",    # safe with WAL; faster than FULL
    "PRAGMA busy_timeout = 5000",     # bounded wait on a locked database
    "PRAGMA cache_size = -65536",     # 64 MB page cache
    "PRAGMA temp_store = MEMORY",
]


class ConnectionManager:
    """
    Wrapper around the single aiosqlite connection shared by all stores.

    * Reads  - ``async with read()``; WAL allows concurrent reads.
    * Writes - ``async with transaction()``; serialised by ``_write_sem``.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)
        self._path: Path | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, path: Path) -> None:
        """
        Open the database file and apply the pragmas.

        Args:
            path: Path to the SQLite database file; parent directories are created.

        Raises:
            StoreUnavailable: If the file cannot be opened.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists, ignoring")
            return

        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(path)
            self._conn.row_factory = aiosqlite.Row
            for pragma in _PRAGMAS:
                await self._conn.execute(pragma)
            await self._conn.commit()
        except aiosqlite.Error as exc:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
            raise StoreUnavailable(f"Cannot open database at {path}: {exc}") from exc

        logger.info("[DB CONNECTION] Opened connection to %s", path)

    async def close(self) -> None:
        """Flush the WAL and close the connection. Safe to call twice."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except aiosqlite.Error:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Connection access
    # ------------------------------------------------------------------

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            StoreUnavailable: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise StoreUnavailable(
                "Database connection is not open. Call await manager.open(path) at startup."
            )
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Serialised write transaction.

        Commits on clean exit and rolls back on any exception. Operational
        errors are re-raised as StoreUnavailable; everything else (including
        IntegrityError) propagates unchanged after the rollback.
        """
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except aiosqlite.OperationalError as exc:
                await self._rollback_quietly(conn)
                raise StoreUnavailable(f"Database write failed: {exc}") from exc
            except BaseException:
                await self._rollback_quietly(conn)
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Read-only access. No semaphore; operational errors become StoreUnavailable.
        """
        conn = self.connection
        try:
            yield conn
        except aiosqlite.OperationalError as exc:
            raise StoreUnavailable(f"Database read failed: {exc}") from exc

    @staticmethod
    async def _rollback_quietly(conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except aiosqlite.Error:
            logger.exception("[DB CONNECTION] Rollback failed")
