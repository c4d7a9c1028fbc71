"""
Human-presentable case ids for bans.

Ids are random decimal strings without a leading zero. Drawing starts at
``min_digits`` wide; when ``attempts_per_width`` draws in a row all hit
existing bans the width grows by one, up to ``max_digits``. Ids stay short
while the ban list is small and the allocator needs no sequence or lock.

The existence check is only a pre-filter. Two concurrent allocations may
return the same value; the ban table's unique constraint rejects the second
insert and the engine allocates again.
"""

from __future__ import annotations

import random
from typing import Collection, Optional, Protocol

from modrelay.configuration.case_id_settings import CaseIdSettings
from modrelay.errors import AllocationExhausted
from modrelay.util.logger import get_logger

logger = get_logger("case_allocator")


class CaseIdIndex(Protocol):
    async def case_id_exists(self, case_id: str) -> bool: ...


class CaseAllocator:
    """Draws unused case ids, checking each against the ban store."""

    def __init__(
        self,
        index: CaseIdIndex,
        settings: Optional[CaseIdSettings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        settings = settings or CaseIdSettings()
        if settings.min_digits < 1 or settings.max_digits < settings.min_digits:
            raise ValueError(
                f"Invalid case id widths: min={settings.min_digits}, max={settings.max_digits}"
            )
        self._index = index
        self.min_digits = settings.min_digits
        self.max_digits = settings.max_digits
        self.attempts_per_width = max(1, settings.attempts_per_width)
        self._rng = rng or random.SystemRandom()

    def _draw(self, digits: int) -> str:
        low = 10 ** (digits - 1)
        high = 10 ** digits - 1
        return str(self._rng.randint(low, high))

    async def allocate(self, exclude: Collection[str] = ()) -> str:
        """
        Return a case id not held by any current ban.

        Args:
            exclude: Values to treat as taken even if no ban holds them.

        Raises:
            AllocationExhausted: If no free id was found up to ``max_digits``.
        """
        for digits in range(self.min_digits, self.max_digits + 1):
            for _ in range(self.attempts_per_width):
                case_id = self._draw(digits)
                if case_id in exclude:
                    continue
                if not await self._index.case_id_exists(case_id):
                    return case_id

            if digits < self.max_digits:
                logger.warning(
                    "[CASE ALLOCATOR] %d attempts exhausted at %d digits, widening to %d",
                    self.attempts_per_width, digits, digits + 1,
                )

        logger.error("[CASE ALLOCATOR] Case id space exhausted up to %d digits", self.max_digits)
        raise AllocationExhausted(self.max_digits)
