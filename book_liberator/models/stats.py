"""
Dataclass for tracking liberation session statistics.
"""

import asyncio
import time
from dataclasses import dataclass, field

from book_liberator.models.status import StatusResult


@dataclass
class AcquisitionStats:
    """Tracks statistics for a liberation session."""

    books_liberated: int = 0
    books_skipped_exists: int = 0
    books_failed: int = 0
    total_size_liberated: int = 0
    failures: dict[str, tuple[str, ...]] = field(default_factory=dict)

    _started_at: float = field(default=0.0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self):
        self._started_at = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._started_at

    @property
    def books_processed(self) -> int:
        return self.books_liberated + self.books_skipped_exists + self.books_failed

    async def record(
        self, product_id: str, result: StatusResult, size_bytes: int = 0
    ) -> None:
        """Folds one pipeline result into the session counters."""
        async with self._lock:
            if not result.is_success:
                self.books_failed += 1
                self.failures[product_id] = result.errors
            elif result.is_skipped:
                self.books_skipped_exists += 1
            else:
                self.books_liberated += 1
                self.total_size_liberated += size_bytes
