"""
Persistent set of bans, unique by user handle and by case id.

Set semantics only. Uniqueness is enforced by the table's UNIQUE constraints
at insert time and reported as a :class:`BanInsertResult` conflict; the store
never reads before writing to decide that.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from modrelay.database.db_connection import ConnectionManager
from modrelay.database.db_perf_mon import DatabasePerformanceMonitor
from modrelay.datatypes.moderation_datatypes import BanInsertResult, BanRecord, ConflictField
from modrelay.util.logger import get_logger, short_handle
from modrelay.util.time_utils import from_unix, utc_now_unix

logger = get_logger("ban_store")

_COLUMNS = "id, user_handle, case_id, banned_at, banned_by, reason"


class BanStore:
    """CRUD for the ``banned_users`` table."""

    def __init__(self, connection: ConnectionManager, perf_mon: DatabasePerformanceMonitor | None = None):
        self._connection = connection
        self._perf_mon = perf_mon or DatabasePerformanceMonitor()

    @staticmethod
    def _from_row(row: aiosqlite.Row) -> BanRecord:
        return BanRecord(
            id=int(row["id"]),
            user_handle=str(row["user_handle"]),
            case_id=str(row["case_id"]),
            banned_at=from_unix(row["banned_at"]),
            banned_by=row["banned_by"],
            reason=row["reason"],
        )

    @staticmethod
    def _conflict_field(exc: aiosqlite.IntegrityError) -> Optional[ConflictField]:
        # sqlite reports "UNIQUE constraint failed: banned_users.<column>"
        message = str(exc)
        if "UNIQUE" not in message:
            return None
        if "case_id" in message:
            return ConflictField.CASE_ID
        return ConflictField.USER_HANDLE

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _fetch_one(self, query_name: str, where: str, value: str) -> Optional[BanRecord]:
        with self._perf_mon.measure(query_name):
            async with self._connection.read() as conn:
                cursor = await conn.execute(
                    f"SELECT {_COLUMNS} FROM banned_users WHERE {where} = ? LIMIT 1",
                    (value,),
                )
                row = await cursor.fetchone()
        return self._from_row(row) if row else None

    async def lookup_by_handle(self, handle: str) -> Optional[BanRecord]:
        return await self._fetch_one("ban_lookup_by_handle", "user_handle", handle)

    async def lookup_by_case_id(self, case_id: str) -> Optional[BanRecord]:
        return await self._fetch_one("ban_lookup_by_case_id", "case_id", case_id)

    async def case_id_exists(self, case_id: str) -> bool:
        """Cheap existence probe used by the case allocator."""
        with self._perf_mon.measure("ban_case_id_exists"):
            async with self._connection.read() as conn:
                cursor = await conn.execute(
                    "SELECT 1 FROM banned_users WHERE case_id = ? LIMIT 1",
                    (case_id,),
                )
                return await cursor.fetchone() is not None

    async def list_all(self) -> List[BanRecord]:
        """Every ban, oldest first."""
        with self._perf_mon.measure("ban_list_all"):
            async with self._connection.read() as conn:
                cursor = await conn.execute(f"SELECT {_COLUMNS} FROM banned_users ORDER BY id")
                rows = await cursor.fetchall()
        return [self._from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(
        self,
        handle: str,
        case_id: str,
        banned_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> BanInsertResult:
        """
        Insert a ban.

        Returns:
            ``BanInsertResult.inserted(ban)`` on success, or a conflict result
            naming the unique column that already holds the value.
        """
        return await self._write("ban_insert", handle, case_id, banned_by, reason, replace=False)

    async def replace(
        self,
        handle: str,
        case_id: str,
        banned_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> BanInsertResult:
        """
        Delete any ban for ``handle`` and insert the new one in a single transaction.

        On a case id conflict the transaction is rolled back and the previous
        ban for ``handle`` stays in force.
        """
        return await self._write("ban_replace", handle, case_id, banned_by, reason, replace=True)

    async def _write(
        self,
        query_name: str,
        handle: str,
        case_id: str,
        banned_by: Optional[str],
        reason: Optional[str],
        *,
        replace: bool,
    ) -> BanInsertResult:
        try:
            with self._perf_mon.measure(query_name):
                async with self._connection.transaction() as conn:
                    if replace:
                        await conn.execute("DELETE FROM banned_users WHERE user_handle = ?", (handle,))
                    cursor = await conn.execute(
                        f"""
                        INSERT INTO banned_users (user_handle, case_id, banned_at, banned_by, reason)
                        VALUES (?, ?, ?, ?, ?)
                        RETURNING {_COLUMNS}
                        """,
                        (handle, case_id, utc_now_unix(), banned_by, reason),
                    )
                    rows = await cursor.fetchall()
        except aiosqlite.IntegrityError as exc:
            field = self._conflict_field(exc)
            if field is None:
                raise
            logger.debug(
                "[BAN STORE] Insert conflict on %s for handle %s (case %s)",
                field.value, short_handle(handle), case_id,
            )
            return BanInsertResult.conflict(field)

        ban = self._from_row(rows[0])
        logger.debug("[BAN STORE] Inserted ban case %s for handle %s", ban.case_id, short_handle(handle))
        return BanInsertResult.inserted(ban)

    async def delete_by_handle(self, handle: str) -> bool:
        """Remove the ban for ``handle``; True if a row was removed."""
        with self._perf_mon.measure("ban_delete_by_handle"):
            async with self._connection.transaction() as conn:
                cursor = await conn.execute(
                    "DELETE FROM banned_users WHERE user_handle = ?",
                    (handle,),
                )
                removed = cursor.rowcount > 0
        if removed:
            logger.debug("[BAN STORE] Deleted ban for handle %s", short_handle(handle))
        return removed

    async def delete_by_case_id(self, case_id: str) -> Optional[BanRecord]:
        """Remove the ban with ``case_id`` and return the removed record."""
        with self._perf_mon.measure("ban_delete_by_case_id"):
            async with self._connection.transaction() as conn:
                cursor = await conn.execute(
                    f"DELETE FROM banned_users WHERE case_id = ? RETURNING {_COLUMNS}",
                    (case_id,),
                )
                rows = await cursor.fetchall()
        if not rows:
            return None
        logger.debug("[BAN STORE] Deleted ban case %s", case_id)
        return self._from_row(rows[0])
