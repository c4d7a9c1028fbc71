"""
Exception taxonomy for the moderation core.

Lookup misses are not errors: stores and the engine return ``None`` or
``False`` for them. A handle uniqueness conflict on ban insert is also not an
exception, it is a :class:`~modrelay.datatypes.moderation_datatypes.BanInsertResult`
outcome handled by an ordinary branch.
"""

from __future__ import annotations


class ModerationError(Exception):
    """Base class for every error raised by Modrelay."""


class ValidationError(ModerationError):
    """Malformed handle, case id, submission id or intake payload.

    Raised before any store access.
    """


class ConflictError(ModerationError):
    """A ban could not be written after repeated uniqueness conflicts."""


class AllocationExhausted(ModerationError):
    """No free case id was found up to the maximum digit width."""

    def __init__(self, max_digits: int):
        super().__init__(f"Unable to generate unique case ID (tried up to {max_digits} digits)")
        self.max_digits = max_digits


class StoreUnavailable(ModerationError):
    """The backing store is not open or failed to execute a statement."""


class ConfigurationError(ModerationError):
    """Required configuration (such as the hash salt) is missing or invalid."""
