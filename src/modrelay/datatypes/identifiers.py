"""
Format checks for the identifiers crossing the engine boundary.

Each validator returns the normalised value or raises ValidationError, and
runs before any store access.
"""

from __future__ import annotations

import re
from typing import Union

from modrelay.errors import ValidationError

# Upper bounds for banned_users.user_handle / banned_users.case_id
MAX_HANDLE_LENGTH = 128
MAX_CASE_ID_LENGTH = 16

_HANDLE_RE = re.compile(rf"[0-9a-f]{{1,{MAX_HANDLE_LENGTH}}}")
_CASE_ID_RE = re.compile(rf"[1-9][0-9]{{0,{MAX_CASE_ID_LENGTH - 1}}}")


def validate_handle(value: str) -> str:
    """Return ``value`` as a lowercase hex handle.

    Raises:
        ValidationError: If the value is empty, too long or not hex.
    """
    if not isinstance(value, str):
        raise ValidationError(f"User handle must be a string, got {type(value).__name__}")
    handle = value.strip().lower()
    if not _HANDLE_RE.fullmatch(handle):
        raise ValidationError("User handle must be 1-128 hexadecimal characters")
    return handle


def validate_case_id(value: Union[str, int]) -> str:
    """Return ``value`` as a case id string: digits only, no leading zero."""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(f"Case ID must be a string or int, got {type(value).__name__}")
    case_id = str(value).strip()
    if not _CASE_ID_RE.fullmatch(case_id):
        raise ValidationError(f"Invalid case ID {case_id!r}: expected digits without a leading zero")
    return case_id


def validate_submission_id(value: Union[str, int]) -> int:
    """Return ``value`` as a positive integer submission id."""
    if isinstance(value, bool):
        raise ValidationError("Submission ID must be an integer")
    try:
        submission_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Submission ID must be an integer, got {value!r}") from None
    if submission_id < 1:
        raise ValidationError(f"Submission ID must be positive, got {submission_id}")
    return submission_id
