"""
Data structures describing a library item and the per-run license material.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Iterator, Optional


class LiberatedStatus(str, Enum):
    """Catalog status of a library item."""

    NOT_LIBERATED = "not_liberated"
    LIBERATED = "liberated"
    ERROR = "error"


@dataclass
class AcquisitionItem:
    """One media item to acquire. Only `status` is mutable."""

    product_id: str
    title: str
    locale: str = ""
    account: str = ""
    status: LiberatedStatus = LiberatedStatus.NOT_LIBERATED

    def __str__(self) -> str:
        return f"[{self.product_id}] {self.title}"


@dataclass(frozen=True)
class Chapter:
    title: str
    duration_ms: int


@dataclass
class ChapterTable:
    """Ordered chapter list handed to the decrypt engine when fixup is enabled."""

    chapters: list[Chapter] = field(default_factory=list)

    def add_chapter(self, title: str, duration_ms: int) -> None:
        self.chapters.append(Chapter(title, int(duration_ms)))

    def __iter__(self) -> Iterator[Chapter]:
        return iter(self.chapters)

    def __len__(self) -> int:
        return len(self.chapters)

    @property
    def total_duration(self) -> timedelta:
        return timedelta(milliseconds=sum(c.duration_ms for c in self.chapters))

    def start_offsets_ms(self) -> list[int]:
        """Start offset of every chapter, in milliseconds."""
        offsets, position = [], 0
        for chapter in self.chapters:
            offsets.append(position)
            position += chapter.duration_ms
        return offsets


@dataclass
class DecryptLicense:
    """Ephemeral license for a single decrypt run."""

    source_url: str
    decryption_key: str
    initialization_vector: str
    user_agent: str
    chapter_table: Optional[ChapterTable] = None

    def __repr__(self) -> str:
        # Keep key material out of logs and tracebacks
        return f"DecryptLicense(source_url={self.source_url!r}, chapters={len(self.chapter_table or [])})"
