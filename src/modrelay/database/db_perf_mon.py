"""
Performance monitoring for store queries.

Every store statement runs inside ``measure(name)``; the console's ``stats``
command prints the summary.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator

from modrelay.util.logger import get_logger

logger = get_logger("database_perf_mon")


@dataclass
class QueryStats:
    """Running totals for one query name (seconds)."""
    count: int = 0
    total_time: float = 0.0
    min_time: float = float("inf")
    max_time: float = 0.0

    @property
    def avg_time(self) -> float:
        return self.total_time / self.count if self.count else 0.0


class DatabasePerformanceMonitor:
    """
    Records execution times per query name and warns about slow ones.
    """

    def __init__(self, slow_query_threshold_ms: float = 100.0):
        """
        Args:
            slow_query_threshold_ms: Queries slower than this are logged as warnings
        """
        self._stats: Dict[str, QueryStats] = {}
        self._slow_query_threshold = slow_query_threshold_ms / 1000.0

    def track(self, query_name: str, duration: float) -> None:
        """
        Record one execution of ``query_name`` that took ``duration`` seconds.
        """
        stats = self._stats.setdefault(query_name, QueryStats())
        stats.count += 1
        stats.total_time += duration
        stats.min_time = min(stats.min_time, duration)
        stats.max_time = max(stats.max_time, duration)

        if duration > self._slow_query_threshold:
            logger.warning(
                "[PERFORMANCE] Slow query: %s took %.2fms",
                query_name, duration * 1000
            )

    @contextmanager
    def measure(self, query_name: str) -> Iterator[None]:
        """Time the enclosed block, recording it even when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.track(query_name, time.perf_counter() - start)

    def get_statistics(self) -> Dict[str, Dict[str, float]]:
        """
        Return ``{query_name: {count, total_time, avg_time, min_time, max_time}}``.
        """
        return {
            name: {
                "count": stats.count,
                "total_time": stats.total_time,
                "avg_time": stats.avg_time,
                "min_time": stats.min_time if stats.count else 0.0,
                "max_time": stats.max_time,
            }
            for name, stats in self._stats.items()
        }

    def reset(self) -> None:
        self._stats.clear()
        logger.info("[PERFORMANCE] Statistics reset")

    def get_summary(self) -> str:
        """
        Human-readable summary of all tracked queries, sorted by name.
        """
        if not self._stats:
            return "No queries tracked yet"

        lines = ["Database Performance Summary:", "=" * 50]
        for name, stats in sorted(self._stats.items()):
            lines.append(
                f"{name}:\n"
                f"  Count: {stats.count}\n"
                f"  Avg: {stats.avg_time * 1000:.2f}ms\n"
                f"  Min: {stats.min_time * 1000:.2f}ms\n"
                f"  Max: {stats.max_time * 1000:.2f}ms\n"
                f"  Total: {stats.total_time:.2f}s"
            )
        return "\n".join(lines)
