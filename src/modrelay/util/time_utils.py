"""Conversions between stored unix seconds and UTC datetimes."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional


def utc_now_unix() -> int:
    """Current time as integer unix seconds, the storage format of every timestamp column."""
    return int(time.time())


def from_unix(value: Optional[int]) -> Optional[datetime]:
    """Stored unix seconds to an aware UTC datetime; None passes through."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)
