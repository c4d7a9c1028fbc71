"""
Records and result types exchanged between the stores, the engine and its callers.

Stores build these from rows; nothing here talks to the database. Timestamps
are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SubmissionStatus(Enum):
    """Review state of a submission. ``APPROVED`` and ``DENIED`` are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class BanRecord:
    """A single row of the ``banned_users`` table.

    Attributes:
        id: Internal row id
        user_handle: Handle of the banned submitter (unique)
        case_id: Short numeric reference shown to moderators (unique)
        banned_at: When the ban was written
        banned_by: Moderator who issued the ban, if known
        reason: Free text reason, if given
    """
    id: int
    user_handle: str
    case_id: str
    banned_at: datetime
    banned_by: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Submission:
    """A single row of the ``messages`` table."""
    id: int
    user_handle: str
    text: str
    channel_id: str
    thread_ts: str
    status: SubmissionStatus
    created_at: datetime
    review_ts: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    posted_ts: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status is SubmissionStatus.PENDING


class InsertOutcome(Enum):
    INSERTED = "inserted"
    CONFLICT = "conflict"


class ConflictField(Enum):
    """Which unique column rejected a ban insert."""

    USER_HANDLE = "user_handle"
    CASE_ID = "case_id"


@dataclass(frozen=True, slots=True)
class BanInsertResult:
    """Outcome of ``BanStore.insert``; conflicts are a value, not an exception."""
    outcome: InsertOutcome
    ban: Optional[BanRecord] = None
    conflict_on: Optional[ConflictField] = None

    @classmethod
    def inserted(cls, ban: BanRecord) -> "BanInsertResult":
        return cls(InsertOutcome.INSERTED, ban=ban)

    @classmethod
    def conflict(cls, field: ConflictField) -> "BanInsertResult":
        return cls(InsertOutcome.CONFLICT, conflict_on=field)

    @property
    def ok(self) -> bool:
        return self.outcome is InsertOutcome.INSERTED


@dataclass(frozen=True, slots=True)
class IntakeResult:
    """Result of submitting a reply.

    ``submission`` is None when intake was rejected because the handle is
    banned. ``ban`` is the handle's ban as read after the insert; a non-None
    ban next to an accepted submission means the ban landed mid-intake and
    moderators should see a warning.
    """
    submission: Optional[Submission]
    ban: Optional[BanRecord] = None

    @property
    def accepted(self) -> bool:
        return self.submission is not None


@dataclass(frozen=True, slots=True)
class BanOutcome:
    """Result of ``ModerationEngine.ban``.

    Attributes:
        ban: The ban now in force
        rebanned: True when an existing ban for the handle was replaced
        replaced: The replaced ban, when ``rebanned`` and it was still readable
        cascade_denied: True when the linked pending submission was denied
        cascade_error: Message of a failed cascade; the ban itself stands
    """
    ban: BanRecord
    rebanned: bool = False
    replaced: Optional[BanRecord] = None
    cascade_denied: bool = False
    cascade_error: Optional[str] = None

    @property
    def case_id(self) -> str:
        return self.ban.case_id


@dataclass(frozen=True, slots=True)
class ReviewContext:
    """A submission together with the current ban of its author, for review cards."""
    submission: Submission
    ban: Optional[BanRecord] = None

    @property
    def author_banned(self) -> bool:
        return self.ban is not None
