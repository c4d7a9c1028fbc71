"""
Database initialization and lifecycle for the SQLite backend.

The Database class owns the shared connection and hands the same connection
manager and performance monitor to both stores:

- connection: single long-lived aiosqlite connection with write serialisation
- schema: table and index creation
- bans / messages: the two stores the moderation engine composes
- performance: query timing statistics
"""

from __future__ import annotations

from pathlib import Path

from modrelay.database.ban_store import BanStore
from modrelay.database.db_connection import ConnectionManager
from modrelay.database.db_perf_mon import DatabasePerformanceMonitor
from modrelay.database.db_schema import SchemaManager
from modrelay.database.message_store import MessageStore
from modrelay.util.logger import get_logger

logger = get_logger("database")


class Database:
    """
    Central coordinator for the backing store.

    Lifecycle:
        1. ``await initialize()`` at startup (opens the file, creates the schema)
        2. Use ``bans`` and ``messages``
        3. ``await shutdown()`` at program end
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._initialized = False

        self.connection = ConnectionManager()
        self.db_perf_mon = DatabasePerformanceMonitor()
        self.bans = BanStore(self.connection, self.db_perf_mon)
        self.messages = MessageStore(self.connection, self.db_perf_mon)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Open the database and create the schema. Idempotent.

        Raises:
            StoreUnavailable: If the database file cannot be opened.
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return

        await self.connection.open(self.db_path)
        async with self.connection.transaction() as conn:
            await SchemaManager.initialize_schema(conn)

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", self.db_path)

    async def shutdown(self) -> None:
        """Close the connection. Safe to call when never initialized."""
        if not self._initialized:
            return

        await self.connection.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")

    def get_db_performance_stats(self) -> dict:
        return self.db_perf_mon.get_statistics()

    def reset_db_performance_stats(self) -> None:
        self.db_perf_mon.reset()
