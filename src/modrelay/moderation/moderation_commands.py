"""
Admin commands for ban management, independent of any chat platform.

A transport adapter (slash command handler, console) passes the invoking
user's platform id and the raw argument text; each command returns a
:class:`CommandReply` telling the adapter what to say and where. Only users
in the admin list may run these commands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List

from modrelay.datatypes.identifiers import validate_case_id, validate_handle
from modrelay.errors import ModerationError, ValidationError
from modrelay.moderation.moderation_engine import ModerationEngine
from modrelay.util.format_utils import (
    DEFAULT_MESSAGE_LIMIT,
    format_ban_details,
    format_ban_list,
    format_submission,
)
from modrelay.util.logger import get_logger

logger = get_logger("moderation_commands")

NOT_ADMIN_MESSAGE = "You don't look like an admin to me..."


class ReplyVisibility(Enum):
    """EPHEMERAL replies go to the invoking user only; CHANNEL replies go to the review channel."""

    EPHEMERAL = "ephemeral"
    CHANNEL = "channel"


@dataclass(frozen=True)
class CommandReply:
    messages: List[str] = field(default_factory=list)
    visibility: ReplyVisibility = ReplyVisibility.EPHEMERAL

    @classmethod
    def private(cls, *messages: str) -> "CommandReply":
        return cls(list(messages), ReplyVisibility.EPHEMERAL)

    @classmethod
    def public(cls, *messages: str) -> "CommandReply":
        return cls(list(messages), ReplyVisibility.CHANNEL)

    @property
    def text(self) -> str:
        return "\n\n".join(self.messages)


class ModerationCommands:
    """Ban, unban, list-bans, case and submission lookups for admins."""

    def __init__(
        self,
        engine: ModerationEngine,
        admin_user_ids: Iterable[str],
        handle_length: int,
        message_limit: int = DEFAULT_MESSAGE_LIMIT,
    ) -> None:
        self._engine = engine
        self._admins = {str(user_id).strip() for user_id in admin_user_ids if str(user_id).strip()}
        self.handle_length = handle_length
        self.message_limit = message_limit

    def is_admin(self, user_id: str) -> bool:
        return str(user_id) in self._admins

    def _parse_handle(self, raw: str) -> str:
        """Full-length handle check on top of the engine's format check."""
        handle = validate_handle(raw)
        if len(handle) != self.handle_length:
            raise ValidationError(f"The hash looks invalid! Expected {self.handle_length} hex characters.")
        return handle

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def ban(self, user_id: str, text: str) -> CommandReply:
        """``ban <hash> [reason]``"""
        if not self.is_admin(user_id):
            return CommandReply.private(NOT_ADMIN_MESSAGE)

        raw_handle, _, reason = (text or "").strip().partition(" ")
        try:
            handle = self._parse_handle(raw_handle)
        except ValidationError as exc:
            return CommandReply.private(f"Usage: `ban <hash> [reason]`\n\n{exc}")

        try:
            outcome = await self._engine.ban(handle, user_id, reason.strip() or None)
        except ModerationError as exc:
            logger.error("[COMMANDS] Ban by %s failed: %s", user_id, exc)
            return CommandReply.private(f"Failed to ban user!\nError: {exc}")

        if outcome.rebanned:
            title = (
                "*User Re-Banned*\nThis user was already banned, but the ban has been updated.\n"
                f"Updated by: {user_id}\nNew reason: {outcome.ban.reason}"
            )
        else:
            title = f"*User Banned*\nBanned by: {user_id}\nReason: {outcome.ban.reason}"
        return CommandReply.public(f"{title}\nCase: {outcome.case_id}\nHash: `{handle}`")

    async def unban(self, user_id: str, text: str) -> CommandReply:
        """``unban <hash|case id>``"""
        if not self.is_admin(user_id):
            return CommandReply.private(NOT_ADMIN_MESSAGE)

        target = (text or "").strip()
        usage = "Usage: `unban <hash|case id>`"
        if not target:
            return CommandReply.private(usage)

        try:
            if target.isdigit() and len(target) != self.handle_length:
                removed = await self._engine.unban_by_case(validate_case_id(target))
                handle = removed.user_handle if removed else None
            else:
                handle = self._parse_handle(target)
                handle = handle if await self._engine.unban(handle) else None
        except ValidationError as exc:
            return CommandReply.private(f"{usage}\n\n{exc}")
        except ModerationError as exc:
            logger.error("[COMMANDS] Unban by %s failed: %s", user_id, exc)
            return CommandReply.private(f"Failed to unban user!\nError: {exc}")

        if handle is None:
            return CommandReply.private("That user wasn't in the ban list...")
        return CommandReply.public(
            f"*User Unbanned*\nUnbanned by: {user_id}\nThey've been given another chance.\nHash: `{handle}`"
        )

    async def list_bans(self, user_id: str) -> CommandReply:
        """``list-bans``; non-admins get no reply at all."""
        if not self.is_admin(user_id):
            return CommandReply.private()

        try:
            bans = await self._engine.list_bans()
        except ModerationError as exc:
            logger.error("[COMMANDS] Listing bans failed: %s", exc)
            return CommandReply.private(f"Failed to list bans!\nError: {exc}")
        return CommandReply.private(*format_ban_list(bans, self.message_limit))

    async def case(self, user_id: str, text: str) -> CommandReply:
        """``case <case id>``"""
        if not self.is_admin(user_id):
            return CommandReply.private(NOT_ADMIN_MESSAGE)

        try:
            ban = await self._engine.get_ban_by_case(validate_case_id((text or "").strip()))
        except ValidationError as exc:
            return CommandReply.private(f"Usage: `case <case id>`\n\n{exc}")
        except ModerationError as exc:
            return CommandReply.private(f"Failed to look up case!\nError: {exc}")

        if ban is None:
            return CommandReply.private(f"No active ban with case {text.strip()}.")
        return CommandReply.private(format_ban_details(ban))

    async def submission(self, user_id: str, text: str) -> CommandReply:
        """``submission <id>``: show a submission and its author's ban state."""
        if not self.is_admin(user_id):
            return CommandReply.private(NOT_ADMIN_MESSAGE)

        try:
            context = await self._engine.review_context((text or "").strip())
        except ValidationError as exc:
            return CommandReply.private(f"Usage: `submission <id>`\n\n{exc}")
        except ModerationError as exc:
            return CommandReply.private(f"Failed to look up submission!\nError: {exc}")

        if context is None:
            return CommandReply.private(f"No submission #{text.strip()}.")
        return CommandReply.private(format_submission(context.submission, context.ban))
