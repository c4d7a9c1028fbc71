"""
Persistent submissions and their review status.

Status writes are single conditional UPDATEs guarded by ``status = 'pending'``:
of two racing decisions on one submission exactly one changes a row, the other
sees ``rowcount == 0`` and reports False. Rows are never deleted.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from modrelay.database.db_connection import ConnectionManager
from modrelay.database.db_perf_mon import DatabasePerformanceMonitor
from modrelay.datatypes.moderation_datatypes import Submission, SubmissionStatus
from modrelay.util.logger import get_logger, short_handle
from modrelay.util.time_utils import from_unix, utc_now_unix

logger = get_logger("message_store")

_COLUMNS = (
    "id, user_handle, text, channel_id, thread_ts, review_ts, status, "
    "reviewed_by, reviewed_at, posted_ts, created_at"
)


class MessageStore:
    """CRUD for the ``messages`` table."""

    def __init__(self, connection: ConnectionManager, perf_mon: DatabasePerformanceMonitor | None = None):
        self._connection = connection
        self._perf_mon = perf_mon or DatabasePerformanceMonitor()

    @staticmethod
    def _from_row(row: aiosqlite.Row) -> Submission:
        return Submission(
            id=int(row["id"]),
            user_handle=str(row["user_handle"]),
            text=str(row["text"]),
            channel_id=str(row["channel_id"]),
            thread_ts=str(row["thread_ts"]),
            status=SubmissionStatus(row["status"]),
            created_at=from_unix(row["created_at"]),
            review_ts=row["review_ts"],
            reviewed_by=row["reviewed_by"],
            reviewed_at=from_unix(row["reviewed_at"]),
            posted_ts=row["posted_ts"],
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, user_handle: str, text: str, channel_id: str, thread_ts: str) -> Submission:
        """Store a new submission in ``pending`` status and return it."""
        with self._perf_mon.measure("message_insert"):
            async with self._connection.transaction() as conn:
                cursor = await conn.execute(
                    f"""
                    INSERT INTO messages (user_handle, text, channel_id, thread_ts, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    RETURNING {_COLUMNS}
                    """,
                    (user_handle, text, channel_id, thread_ts, SubmissionStatus.PENDING.value, utc_now_unix()),
                )
                rows = await cursor.fetchall()

        submission = self._from_row(rows[0])
        logger.debug(
            "[MESSAGE STORE] Stored submission %d from handle %s",
            submission.id, short_handle(user_handle),
        )
        return submission

    async def _update_pending(self, query_name: str, assignments: str, params: tuple) -> bool:
        with self._perf_mon.measure(query_name):
            async with self._connection.transaction() as conn:
                cursor = await conn.execute(
                    f"UPDATE messages SET {assignments} WHERE id = ? AND status = ?",
                    (*params, SubmissionStatus.PENDING.value),
                )
                return cursor.rowcount > 0

    async def set_approved(self, submission_id: int, reviewer: str, posted_ts: Optional[str]) -> bool:
        """Move a pending submission to ``approved``; False if it was not pending."""
        return await self._update_pending(
            "message_set_approved",
            "status = ?, reviewed_by = ?, reviewed_at = ?, posted_ts = ?",
            (SubmissionStatus.APPROVED.value, reviewer, utc_now_unix(), posted_ts, submission_id),
        )

    async def set_denied(self, submission_id: int, reviewer: str) -> bool:
        """Move a pending submission to ``denied``; False if it was not pending."""
        return await self._update_pending(
            "message_set_denied",
            "status = ?, reviewed_by = ?, reviewed_at = ?",
            (SubmissionStatus.DENIED.value, reviewer, utc_now_unix(), submission_id),
        )

    async def set_review_ts(self, submission_id: int, review_ts: str) -> bool:
        """Remember which moderator-channel message shows this submission."""
        with self._perf_mon.measure("message_set_review_ts"):
            async with self._connection.transaction() as conn:
                cursor = await conn.execute(
                    "UPDATE messages SET review_ts = ? WHERE id = ?",
                    (review_ts, submission_id),
                )
                return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, submission_id: int) -> Optional[Submission]:
        with self._perf_mon.measure("message_get"):
            async with self._connection.read() as conn:
                cursor = await conn.execute(
                    f"SELECT {_COLUMNS} FROM messages WHERE id = ? LIMIT 1",
                    (submission_id,),
                )
                row = await cursor.fetchone()
        return self._from_row(row) if row else None

    async def list_pending_for_handle(self, user_handle: str) -> List[Submission]:
        """Pending submissions of one handle, oldest first."""
        with self._perf_mon.measure("message_list_pending_for_handle"):
            async with self._connection.read() as conn:
                cursor = await conn.execute(
                    f"SELECT {_COLUMNS} FROM messages WHERE user_handle = ? AND status = ? ORDER BY id",
                    (user_handle, SubmissionStatus.PENDING.value),
                )
                rows = await cursor.fetchall()
        return [self._from_row(row) for row in rows]
