from datetime import datetime, timezone
from typing import List, Optional, Sequence

from modrelay.datatypes.moderation_datatypes import BanRecord, Submission
from modrelay.util.logger import get_logger

logger = get_logger("format_utils")

# Chat platforms cap messages near 3000 characters; stay well below it.
DEFAULT_MESSAGE_LIMIT = 2500
CONTINUED_MARKER = "\n_... continued in next message ..._"


def humanize_timestamp(value: Optional[datetime]) -> str:
    """Return a human-readable UTC timestamp (YYYY-MM-DD HH:MM:SS UTC).

    Naive datetimes are assumed to be UTC. None renders as ``"Unknown"``.
    """
    if value is None:
        return "Unknown"
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_ban_line(position: int, ban: BanRecord) -> str:
    """One numbered entry of the ban list."""
    return (
        f"{position}. `{ban.user_handle}` (case {ban.case_id})\n"
        f"   Banned: {humanize_timestamp(ban.banned_at)}\n"
        f"   By: {ban.banned_by or 'Unknown'}\n"
        f"   Reason: {ban.reason or 'N/A'}\n\n"
    )


def format_ban_list(bans: Sequence[BanRecord], limit: int = DEFAULT_MESSAGE_LIMIT) -> List[str]:
    """Render the ban list as one or more messages of at most ``limit`` characters.

    Every message starts with the same header. Entries are never split; when
    the next entry would overflow, the current message is closed with a
    continuation marker and a new one begins. A single entry longer than the
    limit gets a message of its own.

    Args:
        bans: Bans in display order.
        limit: Maximum characters per message.

    Returns:
        The messages in order; a single "no bans" message when ``bans`` is empty.
    """
    if not bans:
        return ["No banned users! Everyone's behaving perfectly."]

    header = f"*Banned Users ({len(bans)} total)*\n\n"
    messages: List[str] = []
    buffer = ""

    for position, ban in enumerate(bans, start=1):
        line = format_ban_line(position, ban)
        if buffer and len(header + buffer + line + CONTINUED_MARKER) > limit:
            messages.append(f"{header}{buffer}{CONTINUED_MARKER}")
            buffer = ""
        buffer += line

    if buffer:
        messages.append(f"{header}{buffer}")

    if len(messages) > 1:
        logger.debug("Ban list of %d entries split into %d messages", len(bans), len(messages))
    return messages


def format_ban_details(ban: BanRecord) -> str:
    """Multi-line description of a single ban."""
    return (
        f"Case {ban.case_id}\n"
        f"Hash: `{ban.user_handle}`\n"
        f"Banned: {humanize_timestamp(ban.banned_at)}\n"
        f"By: {ban.banned_by or 'Unknown'}\n"
        f"Reason: {ban.reason or 'N/A'}"
    )


def format_submission(submission: Submission, ban: Optional[BanRecord] = None) -> str:
    """Moderator-facing summary of a submission, with a warning line if its author is banned."""
    lines = [
        f"Submission #{submission.id} [{submission.status}]",
        f"Text: {submission.text}",
        f"Thread: {submission.channel_id}/{submission.thread_ts}",
        f"Submitted: {humanize_timestamp(submission.created_at)}",
    ]
    if submission.reviewed_by:
        lines.append(f"Reviewed by {submission.reviewed_by} at {humanize_timestamp(submission.reviewed_at)}")
    if submission.posted_ts:
        lines.append(f"Posted as: {submission.posted_ts}")
    if ban is not None:
        lines.append(f"User banned by {ban.banned_by or 'Unknown'} - Reason: {ban.reason or 'N/A'} (case {ban.case_id})")
    lines.append(f"_{submission.user_handle}_")
    return "\n".join(lines)
