"""Tests for the moderation engine workflows against a real SQLite store."""

import asyncio
import random

import pytest

from modrelay.configuration.case_id_settings import CaseIdSettings
from modrelay.database.ban_store import BanStore
from modrelay.datatypes.moderation_datatypes import BanInsertResult, ConflictField, SubmissionStatus
from modrelay.errors import AllocationExhausted, ConflictError, ValidationError
from modrelay.moderation.case_allocator import CaseAllocator
from modrelay.moderation.moderation_engine import ModerationEngine


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_intake_hashes_user_and_queues_pending(engine, hasher):
    result = await engine.intake("U123", "hello", "C1", "171.0")

    assert result.accepted
    assert result.ban is None
    assert result.submission.user_handle == hasher.hash("U123")
    assert result.submission.status is SubmissionStatus.PENDING


@pytest.mark.asyncio
async def test_banned_handle_is_rejected_without_a_row(engine, test_db):
    await engine.ban("aa11", "U1", "spam")

    result = await engine.submit("aa11", "again", "C1", "171.0")

    assert not result.accepted
    assert result.ban.reason == "spam"
    assert await test_db.messages.list_pending_for_handle("aa11") == []


@pytest.mark.asyncio
async def test_submit_requires_thread_context(engine):
    with pytest.raises(ValidationError):
        await engine.submit("aa11", "hello", "", "171.0")
    with pytest.raises(ValidationError):
        await engine.submit("aa11", "hello", "C1", None)


@pytest.mark.asyncio
async def test_submit_rejects_malformed_handle(engine):
    with pytest.raises(ValidationError):
        await engine.submit("not-hex!", "hello", "C1", "171.0")


@pytest.mark.asyncio
async def test_handles_are_normalised_to_lowercase(engine):
    result = await engine.submit("AA11", "hello", "C1", "171.0")
    assert result.submission.user_handle == "aa11"


# ---------------------------------------------------------------------------
# Review decisions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_approve_records_reviewer_and_post(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission

    assert await engine.approve(submission.id, "U1", "173.1") is True

    stored = await engine.get_submission(submission.id)
    assert stored.status is SubmissionStatus.APPROVED
    assert stored.reviewed_by == "U1"
    assert stored.posted_ts == "173.1"
    assert stored.reviewed_at is not None


@pytest.mark.asyncio
async def test_second_decision_is_ignored(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission
    await engine.approve(submission.id, "U1", "173.1")

    assert await engine.deny(submission.id, "U2") is False
    assert await engine.approve(submission.id, "U3", "174.0") is False

    stored = await engine.get_submission(submission.id)
    assert stored.status is SubmissionStatus.APPROVED
    assert stored.reviewed_by == "U1"
    assert stored.posted_ts == "173.1"


@pytest.mark.asyncio
async def test_decisions_on_unknown_submission(engine):
    assert await engine.approve(999, "U1", "1.0") is False
    assert await engine.deny(999, "U1") is False
    assert await engine.get_submission(999) is None
    assert await engine.review_context(999) is None


@pytest.mark.asyncio
async def test_decision_requires_reviewer(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission
    with pytest.raises(ValidationError):
        await engine.deny(submission.id, " ")


@pytest.mark.asyncio
async def test_invalid_submission_id(engine):
    with pytest.raises(ValidationError):
        await engine.approve(0, "U1", "1.0")
    with pytest.raises(ValidationError):
        await engine.deny("abc", "U1")


@pytest.mark.asyncio
async def test_concurrent_approve_and_deny_end_in_one_state(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission

    approved, denied = await asyncio.gather(
        engine.approve(submission.id, "U1", "173.1"),
        engine.deny(submission.id, "U2"),
    )

    assert approved != denied
    stored = await engine.get_submission(submission.id)
    if approved:
        assert stored.status is SubmissionStatus.APPROVED
        assert stored.posted_ts == "173.1"
    else:
        assert stored.status is SubmissionStatus.DENIED
        assert stored.posted_ts is None


@pytest.mark.asyncio
async def test_approve_and_publish_posts_then_records(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission
    published = []

    async def publish(item):
        published.append(item.text)
        return "175.2"

    assert await engine.approve_and_publish(submission.id, "U1", publish) is True
    assert published == ["hello"]
    assert (await engine.get_submission(submission.id)).posted_ts == "175.2"


@pytest.mark.asyncio
async def test_approve_and_publish_skips_decided_submission(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission
    await engine.deny(submission.id, "U2")

    async def publish(item):
        raise AssertionError("must not publish a decided submission")

    assert await engine.approve_and_publish(submission.id, "U1", publish) is False


@pytest.mark.asyncio
async def test_approve_and_publish_loses_race_during_publish(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission

    async def publish(item):
        await engine.deny(item.id, "U2")
        return "175.2"

    assert await engine.approve_and_publish(submission.id, "U1", publish) is False
    assert (await engine.get_submission(submission.id)).status is SubmissionStatus.DENIED


@pytest.mark.asyncio
async def test_attach_review_message(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission

    assert await engine.attach_review_message(submission.id, "180.0") is True
    assert (await engine.get_submission(submission.id)).review_ts == "180.0"


@pytest.mark.asyncio
async def test_review_context_reports_author_ban(engine):
    submission = (await engine.submit("aa11", "hello", "C1", "171.0")).submission
    await engine.ban("aa11", "U1", "spam")

    context = await engine.review_context(submission.id)

    assert context.submission.id == submission.id
    assert context.author_banned
    assert context.ban.reason == "spam"


# ---------------------------------------------------------------------------
# Bans
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_ban_assigns_four_digit_case(engine):
    outcome = await engine.ban("aa11", "U1", "spam")

    assert not outcome.rebanned
    assert len(outcome.case_id) == 4
    assert outcome.case_id[0] != "0"
    assert (await engine.get_ban("aa11")) == outcome.ban
    assert (await engine.get_ban_by_case(outcome.case_id)) == outcome.ban


@pytest.mark.asyncio
async def test_ban_uses_default_reason(engine):
    outcome = await engine.ban("aa11", "U1", "   ")
    assert outcome.ban.reason == "No reason"


@pytest.mark.asyncio
async def test_reban_replaces_with_new_case_and_reason(engine):
    first = await engine.ban("aa11", "U1", "spam")

    second = await engine.ban("aa11", "U2", "abuse")

    assert second.rebanned
    assert second.replaced == first.ban
    assert second.case_id != first.case_id
    bans = await engine.list_bans()
    assert len(bans) == 1
    assert bans[0].reason == "abuse"
    assert bans[0].banned_by == "U2"
    assert await engine.get_ban_by_case(first.case_id) is None


@pytest.mark.asyncio
async def test_concurrent_first_bans_leave_one_record(engine):
    outcomes = await asyncio.gather(
        engine.ban("aa11", "U1", "first"),
        engine.ban("aa11", "U2", "second"),
    )

    bans = await engine.list_bans()
    assert len(bans) == 1
    assert bans[0].case_id in {outcome.case_id for outcome in outcomes}


@pytest.mark.asyncio
async def test_ban_with_submission_denies_it(engine):
    submission = (await engine.submit("bb22", "spam spam", "C1", "171.0")).submission

    outcome = await engine.ban("bb22", "U1", "spam", submission_id=submission.id)

    assert outcome.cascade_denied
    assert outcome.cascade_error is None
    stored = await engine.get_submission(submission.id)
    assert stored.status is SubmissionStatus.DENIED
    assert stored.reviewed_by == "U1"


@pytest.mark.asyncio
async def test_cascade_leaves_other_handles_submission_alone(engine):
    other = (await engine.submit("cc33", "fine", "C1", "171.0")).submission

    outcome = await engine.ban("bb22", "U1", "spam", submission_id=other.id)

    assert not outcome.cascade_denied
    assert (await engine.get_submission(other.id)).is_pending


@pytest.mark.asyncio
async def test_cascade_ignores_decided_submission(engine):
    submission = (await engine.submit("bb22", "hello", "C1", "171.0")).submission
    await engine.approve(submission.id, "U3", "173.1")

    outcome = await engine.ban("bb22", "U1", "late", submission_id=submission.id)

    assert not outcome.cascade_denied
    assert (await engine.get_submission(submission.id)).status is SubmissionStatus.APPROVED


@pytest.mark.asyncio
async def test_cascade_failure_keeps_the_ban(engine, test_db, monkeypatch):
    submission = (await engine.submit("bb22", "hello", "C1", "171.0")).submission

    async def broken_set_denied(*args, **kwargs):
        raise RuntimeError("store offline")

    monkeypatch.setattr(test_db.messages, "set_denied", broken_set_denied)

    outcome = await engine.ban("bb22", "U1", "spam", submission_id=submission.id)

    assert outcome.cascade_error == "store offline"
    assert not outcome.cascade_denied
    assert await engine.get_ban("bb22") is not None


@pytest.mark.asyncio
async def test_ban_then_submit_scenario(engine):
    first = (await engine.submit("aa11", "first", "C1", "171.0")).submission
    assert await engine.approve(first.id, "U1", "173.1")

    spam = (await engine.submit("bb22", "spam", "C1", "171.0")).submission
    outcome = await engine.ban("bb22", "U1", "spam", submission_id=spam.id)
    assert outcome.cascade_denied

    rejected = await engine.submit("bb22", "more spam", "C1", "171.0")
    assert not rejected.accepted
    assert rejected.ban.case_id == outcome.case_id


@pytest.mark.asyncio
async def test_unban_is_idempotent(engine):
    await engine.ban("aa11", "U1", "spam")

    assert await engine.unban("aa11") is True
    assert await engine.unban("aa11") is False
    assert (await engine.submit("aa11", "back", "C1", "171.0")).accepted


@pytest.mark.asyncio
async def test_unban_by_case(engine):
    outcome = await engine.ban("aa11", "U1", "spam")

    removed = await engine.unban_by_case(outcome.case_id)

    assert removed == outcome.ban
    assert await engine.unban_by_case(outcome.case_id) is None
    assert await engine.get_ban("aa11") is None


@pytest.mark.asyncio
async def test_unban_by_case_validates(engine):
    with pytest.raises(ValidationError):
        await engine.unban_by_case("0123")


@pytest.mark.asyncio
async def test_pending_submissions(engine):
    one = (await engine.submit("aa11", "one", "C1", "1.0")).submission
    two = (await engine.submit("aa11", "two", "C1", "1.0")).submission
    await engine.deny(one.id, "U1")

    assert [s.id for s in await engine.pending_submissions("aa11")] == [two.id]


# ---------------------------------------------------------------------------
# Conflicts and allocation
# ---------------------------------------------------------------------------


class RacingBanStore:
    """Wraps a BanStore and reports a case id conflict on the first insert."""

    def __init__(self, inner: BanStore) -> None:
        self.inner = inner
        self.inserted_case_ids = []

    async def insert(self, handle, case_id, banned_by=None, reason=None):
        self.inserted_case_ids.append(case_id)
        if len(self.inserted_case_ids) == 1:
            return BanInsertResult.conflict(ConflictField.CASE_ID)
        return await self.inner.insert(handle, case_id, banned_by, reason)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.mark.asyncio
async def test_case_id_conflict_is_reallocated(test_db, hasher):
    racing = RacingBanStore(test_db.bans)
    engine = ModerationEngine(hasher, racing, test_db.messages)

    outcome = await engine.ban("aa11", "U1", "spam")

    assert len(racing.inserted_case_ids) == 2
    assert racing.inserted_case_ids[0] != racing.inserted_case_ids[1]
    assert outcome.case_id == racing.inserted_case_ids[1]
    assert not outcome.rebanned


class AlwaysConflictingBanStore:
    def __init__(self, inner: BanStore) -> None:
        self.inner = inner

    async def insert(self, *args, **kwargs):
        return BanInsertResult.conflict(ConflictField.CASE_ID)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.mark.asyncio
async def test_persistent_conflict_raises(test_db, hasher):
    engine = ModerationEngine(
        hasher, AlwaysConflictingBanStore(test_db.bans), test_db.messages, max_ban_attempts=3
    )

    with pytest.raises(ConflictError):
        await engine.ban("aa11", "U1", "spam")


class FullIndex:
    async def case_id_exists(self, case_id):
        return True


@pytest.mark.asyncio
async def test_allocation_exhausted_propagates(test_db, hasher):
    allocator = CaseAllocator(FullIndex(), rng=random.Random(1))
    engine = ModerationEngine(hasher, test_db.bans, test_db.messages, allocator)

    with pytest.raises(AllocationExhausted):
        await engine.ban("aa11", "U1", "spam")
    assert await engine.list_bans() == []


# ---------------------------------------------------------------------------
# Failed re-bans keep the previous ban
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reban_with_single_attempt_replaces(test_db, hasher):
    engine = ModerationEngine(hasher, test_db.bans, test_db.messages, max_ban_attempts=1)
    first = await engine.ban("bb22", "U1", "spam")

    second = await engine.ban("bb22", "U1", "worse spam")

    assert second.rebanned
    assert second.case_id != first.case_id
    bans = await engine.list_bans()
    assert [(ban.case_id, ban.reason) for ban in bans] == [(second.case_id, "worse spam")]


class ConflictingReplaceBanStore:
    """Lets inserts through but reports a case id conflict on every replace."""

    def __init__(self, inner: BanStore) -> None:
        self.inner = inner
        self.replace_calls = 0

    async def replace(self, *args, **kwargs):
        self.replace_calls += 1
        return BanInsertResult.conflict(ConflictField.CASE_ID)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.mark.asyncio
async def test_failed_reban_keeps_original_ban(test_db, hasher):
    store = ConflictingReplaceBanStore(test_db.bans)
    engine = ModerationEngine(hasher, store, test_db.messages, max_ban_attempts=2)
    original = await engine.ban("bb22", "U1", "spam")

    with pytest.raises(ConflictError):
        await engine.ban("bb22", "U1", "worse spam")

    assert store.replace_calls == 2
    assert await engine.get_ban("bb22") == original.ban


class FillingIndex:
    """Reports free case ids for the first ``free_calls`` checks, then every id as taken."""

    def __init__(self, inner: BanStore, free_calls: int) -> None:
        self.inner = inner
        self.free_calls = free_calls
        self.calls = 0

    async def case_id_exists(self, case_id):
        self.calls += 1
        if self.calls > self.free_calls:
            return True
        return await self.inner.case_id_exists(case_id)


@pytest.mark.asyncio
async def test_allocation_exhausted_during_reban_keeps_original_ban(test_db, hasher):
    settings = CaseIdSettings({"min_digits": 4, "max_digits": 4, "attempts_per_width": 3})
    allocator = CaseAllocator(FillingIndex(test_db.bans, free_calls=2), settings, random.Random(3))
    engine = ModerationEngine(hasher, test_db.bans, test_db.messages, allocator)
    original = await engine.ban("bb22", "U1", "spam")

    with pytest.raises(AllocationExhausted):
        await engine.ban("bb22", "U1", "worse spam")

    assert await engine.get_ban("bb22") == original.ban
