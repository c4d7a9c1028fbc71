"""
Moderation engine: intake, review decisions and ban reconciliation.

The engine is the only component that decides to mutate the stores. Each call
is an independent unit of work; there is no in-process lock across calls.
Correctness under concurrent moderator actions comes from the stores:

- review decisions are conditional writes (``status = 'pending'``), so racing
  approve/deny calls end in exactly one terminal state;
- ban inserts hit unique constraints, so a racing first-time ban turns into a
  replace and exactly one ban per handle survives;
- case id collisions between concurrent allocations are rejected at insert
  and simply reallocated.

Secondary effects (the cascade deny on ban) never undo a committed primary
effect; their failure is logged and reported on the result.
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Set

from modrelay.database.ban_store import BanStore
from modrelay.database.message_store import MessageStore
from modrelay.datatypes.identifiers import validate_case_id, validate_handle, validate_submission_id
from modrelay.datatypes.moderation_datatypes import (
    BanOutcome,
    BanRecord,
    ConflictField,
    IntakeResult,
    ReviewContext,
    Submission,
)
from modrelay.errors import ConflictError, ValidationError
from modrelay.identity.hasher import IdentityHasher
from modrelay.moderation.case_allocator import CaseAllocator
from modrelay.util.logger import get_logger, short_handle

logger = get_logger("moderation_engine")

# Publishes an approved submission and returns the platform's reference to the post
Publisher = Callable[[Submission], Awaitable[Optional[str]]]

DEFAULT_BAN_REASON = "No reason"
MAX_BAN_WRITE_ATTEMPTS = 5
CASCADE_REVIEWER = "system"


def _require_text(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return str(value).strip()


class ModerationEngine:
    """Composes the hasher, allocator and stores into the moderation workflows."""

    def __init__(
        self,
        hasher: IdentityHasher,
        bans: BanStore,
        messages: MessageStore,
        allocator: Optional[CaseAllocator] = None,
        *,
        default_reason: str = DEFAULT_BAN_REASON,
        max_ban_attempts: int = MAX_BAN_WRITE_ATTEMPTS,
    ) -> None:
        self._hasher = hasher
        self._bans = bans
        self._messages = messages
        self._allocator = allocator or CaseAllocator(bans)
        self.default_reason = default_reason
        self.max_ban_attempts = max(1, max_ban_attempts)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def hash(self, raw_id: str) -> str:
        """Derive the handle for a platform user id."""
        return self._hasher.hash(raw_id)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def intake(self, raw_user_id: str, text: str, channel_id: str, thread_ts: str) -> IntakeResult:
        """Hash the platform user id and submit on behalf of the resulting handle."""
        return await self.submit(self.hash(raw_user_id), text, channel_id, thread_ts)

    async def submit(self, handle: str, text: str, channel_id: str, thread_ts: str) -> IntakeResult:
        """
        Queue a reply for review.

        Rejected (no row written, ``submission`` is None) when the handle is
        banned. Otherwise the pending submission is returned together with
        the handle's ban as read *after* the insert, so a ban that landed
        mid-intake still shows up as a warning for moderators.

        Raises:
            ValidationError: Malformed handle, or no channel/thread to reply into.
        """
        handle = validate_handle(handle)
        channel_id = _require_text(channel_id, "Channel ID")
        thread_ts = _require_text(thread_ts, "Thread timestamp")

        existing_ban = await self._bans.lookup_by_handle(handle)
        if existing_ban is not None:
            logger.info(
                "[ENGINE] Rejected submission from banned handle %s (case %s)",
                short_handle(handle), existing_ban.case_id,
            )
            return IntakeResult(submission=None, ban=existing_ban)

        submission = await self._messages.insert(handle, text or "", channel_id, thread_ts)
        current_ban = await self._bans.lookup_by_handle(handle)
        logger.info(
            "[ENGINE] Submission %d queued for review (handle %s)",
            submission.id, short_handle(handle),
        )
        return IntakeResult(submission=submission, ban=current_ban)

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    async def get_submission(self, submission_id: int) -> Optional[Submission]:
        return await self._messages.get(validate_submission_id(submission_id))

    async def review_context(self, submission_id: int) -> Optional[ReviewContext]:
        """The submission plus the current ban of its author, or None if unknown."""
        submission = await self.get_submission(submission_id)
        if submission is None:
            return None
        ban = await self._bans.lookup_by_handle(submission.user_handle)
        return ReviewContext(submission=submission, ban=ban)

    async def attach_review_message(self, submission_id: int, review_ts: str) -> bool:
        """Record the moderator-channel message that displays the submission."""
        return await self._messages.set_review_ts(
            validate_submission_id(submission_id),
            _require_text(review_ts, "Review message timestamp"),
        )

    async def pending_submissions(self, handle: str) -> List[Submission]:
        return await self._messages.list_pending_for_handle(validate_handle(handle))

    async def _load_pending(self, submission_id: int, decision: str) -> Optional[Submission]:
        submission = await self._messages.get(submission_id)
        if submission is None:
            logger.debug("[ENGINE] %s ignored: submission %d does not exist", decision, submission_id)
            return None
        if not submission.is_pending:
            logger.debug(
                "[ENGINE] %s ignored: submission %d already %s",
                decision, submission_id, submission.status,
            )
            return None
        return submission

    async def approve(self, submission_id: int, reviewer: str, posted_ts: Optional[str]) -> bool:
        """
        Mark a pending submission approved with the reference of its published copy.

        Returns:
            True if this call moved the submission out of ``pending``; False for
            unknown or already decided submissions, including a lost race.
        """
        submission_id = validate_submission_id(submission_id)
        reviewer = _require_text(reviewer, "Reviewer")

        if await self._load_pending(submission_id, "Approve") is None:
            return False

        applied = await self._messages.set_approved(submission_id, reviewer, posted_ts)
        if applied:
            logger.info("[ENGINE] Submission %d approved by %s", submission_id, reviewer)
        else:
            logger.info("[ENGINE] Approve of submission %d lost to a concurrent decision", submission_id)
        return applied

    async def approve_and_publish(self, submission_id: int, reviewer: str, publish: Publisher) -> bool:
        """
        Publish a pending submission through ``publish`` and record the approval.

        ``publish`` is only awaited for a submission that is still pending. If
        a concurrent decision lands while it runs, the published copy stays
        but the approval is not recorded and False is returned.
        """
        submission_id = validate_submission_id(submission_id)
        reviewer = _require_text(reviewer, "Reviewer")

        submission = await self._load_pending(submission_id, "Approve")
        if submission is None:
            return False

        posted_ts = await publish(submission)
        applied = await self._messages.set_approved(submission_id, reviewer, posted_ts)
        if applied:
            logger.info("[ENGINE] Submission %d approved and posted by %s", submission_id, reviewer)
        else:
            logger.warning(
                "[ENGINE] Submission %d was published but a concurrent decision landed first",
                submission_id,
            )
        return applied

    async def deny(self, submission_id: int, reviewer: str) -> bool:
        """Mark a pending submission denied; False if it was unknown or already decided."""
        submission_id = validate_submission_id(submission_id)
        reviewer = _require_text(reviewer, "Reviewer")

        if await self._load_pending(submission_id, "Deny") is None:
            return False

        applied = await self._messages.set_denied(submission_id, reviewer)
        if applied:
            logger.info("[ENGINE] Submission %d denied by %s", submission_id, reviewer)
        else:
            logger.info("[ENGINE] Deny of submission %d lost to a concurrent decision", submission_id)
        return applied

    # ------------------------------------------------------------------
    # Bans
    # ------------------------------------------------------------------

    async def get_ban(self, handle: str) -> Optional[BanRecord]:
        return await self._bans.lookup_by_handle(validate_handle(handle))

    async def get_ban_by_case(self, case_id: str) -> Optional[BanRecord]:
        return await self._bans.lookup_by_case_id(validate_case_id(case_id))

    async def list_bans(self) -> List[BanRecord]:
        return await self._bans.list_all()

    async def ban(
        self,
        handle: str,
        moderator: Optional[str] = None,
        reason: Optional[str] = None,
        submission_id: Optional[int] = None,
    ) -> BanOutcome:
        """
        Ban a handle under a fresh case id.

        An existing ban for the handle is replaced: deleted and re-created
        with a new case id and the new reason in one transaction (``rebanned``
        on the outcome). When this raises, the previous ban is still in force.
        When ``submission_id`` names a pending submission of the same handle
        it is denied as part of the ban.

        Raises:
            ValidationError: Malformed handle or submission id.
            AllocationExhausted: No free case id.
            ConflictError: The write kept conflicting after repeated attempts.
        """
        handle = validate_handle(handle)
        if submission_id is not None:
            submission_id = validate_submission_id(submission_id)
        reason = (reason or "").strip() or self.default_reason

        rebanned = False
        replaced: Optional[BanRecord] = None
        taken: Set[str] = set()
        ban: Optional[BanRecord] = None

        # Once a ban for the handle is known to exist, every write is an atomic
        # delete-and-insert, so a failed attempt leaves the previous ban in force.
        # Switching to replace mode does not use up an attempt.
        attempts = 0
        while attempts < self.max_ban_attempts:
            case_id = await self._allocator.allocate(exclude=taken)
            if rebanned:
                result = await self._bans.replace(handle, case_id, moderator, reason)
            else:
                result = await self._bans.insert(handle, case_id, moderator, reason)
            if result.ok:
                ban = result.ban
                break

            if result.conflict_on is ConflictField.CASE_ID:
                logger.info("[ENGINE] Case id %s taken concurrently, allocating another", case_id)
                taken.add(case_id)
                attempts += 1
                continue
            if rebanned:
                attempts += 1
                continue

            existing = await self._bans.lookup_by_handle(handle)
            if existing is not None:
                taken.add(existing.case_id)
                if replaced is None:
                    replaced = existing
            rebanned = True

        if ban is None:
            raise ConflictError(
                f"Ban for handle {short_handle(handle)} still conflicting after {self.max_ban_attempts} attempts"
            )

        if rebanned:
            logger.info(
                "[ENGINE] Handle %s re-banned by %s under case %s (was %s)",
                short_handle(handle), moderator, ban.case_id,
                replaced.case_id if replaced else "unknown",
            )
        else:
            logger.info(
                "[ENGINE] Handle %s banned by %s under case %s",
                short_handle(handle), moderator, ban.case_id,
            )

        cascade_denied = False
        cascade_error: Optional[str] = None
        if submission_id is not None:
            try:
                cascade_denied = await self._cascade_deny(submission_id, handle, moderator)
            except Exception as exc:
                logger.exception(
                    "[ENGINE] Ban case %s applied but denying submission %d failed",
                    ban.case_id, submission_id,
                )
                cascade_error = str(exc) or type(exc).__name__

        return BanOutcome(
            ban=ban,
            rebanned=rebanned,
            replaced=replaced,
            cascade_denied=cascade_denied,
            cascade_error=cascade_error,
        )

    async def _cascade_deny(self, submission_id: int, handle: str, moderator: Optional[str]) -> bool:
        submission = await self._messages.get(submission_id)
        if submission is None or not submission.is_pending:
            return False
        if submission.user_handle != handle:
            logger.warning(
                "[ENGINE] Submission %d does not belong to banned handle %s, not denying it",
                submission_id, short_handle(handle),
            )
            return False

        denied = await self._messages.set_denied(submission_id, moderator or CASCADE_REVIEWER)
        if denied:
            logger.info("[ENGINE] Pending submission %d denied with the ban", submission_id)
        return denied

    async def unban(self, handle: str) -> bool:
        """Lift the ban on ``handle``; False if there was none."""
        handle = validate_handle(handle)
        removed = await self._bans.delete_by_handle(handle)
        if removed:
            logger.info("[ENGINE] Handle %s unbanned", short_handle(handle))
        return removed

    async def unban_by_case(self, case_id: str) -> Optional[BanRecord]:
        """Lift the ban with ``case_id`` and return it; None if there was none."""
        case_id = validate_case_id(case_id)
        removed = await self._bans.delete_by_case_id(case_id)
        if removed is not None:
            logger.info("[ENGINE] Ban case %s lifted (handle %s)", case_id, short_handle(removed.user_handle))
        return removed
