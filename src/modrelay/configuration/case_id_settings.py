from typing import Any, Dict


class CaseIdSettings:
    """Typed accessors for the ``case_ids`` configuration section.

    Widths are digit counts: the allocator starts drawing ``min_digits``-wide
    ids and widens up to ``max_digits`` when a width looks full.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    @property
    def min_digits(self) -> int:
        return int(self.data.get("min_digits", 4))

    @property
    def max_digits(self) -> int:
        return int(self.data.get("max_digits", 8))

    @property
    def attempts_per_width(self) -> int:
        return int(self.data.get("attempts_per_width", 100))
