"""
Result types returned by the pipeline and its placement step.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class StatusResult:
    """
    Terminal outcome of one pipeline run.

    A result is successful when it carries no errors. `notes` holds informational
    messages (e.g. why a run was a no-op) and never affects success.
    """

    errors: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()

    @classmethod
    def success(cls, *notes: str) -> "StatusResult":
        return cls(errors=(), notes=tuple(notes))

    @classmethod
    def failure(cls, *errors: str) -> "StatusResult":
        if not errors:
            raise ValueError("A failed StatusResult needs at least one error message.")
        return cls(errors=tuple(errors))

    @property
    def is_success(self) -> bool:
        return not self.errors

    @property
    def is_skipped(self) -> bool:
        return self.is_success and bool(self.notes)

    def __str__(self) -> str:
        if self.errors:
            return "; ".join(self.errors)
        return "; ".join(self.notes) or "OK"


@dataclass(frozen=True)
class PlacementResult:
    destination_dir: Path
    audio_file_moved: bool
    moved_files: tuple[Path, ...] = field(default=(), repr=False)

    @property
    def audio_path(self) -> Optional[Path]:
        """Final path of the audio file, which is always moved last."""
        if self.audio_file_moved and self.moved_files:
            return self.moved_files[-1]
        return None


@dataclass(frozen=True)
class DecryptProgress:
    """Payload of a progress event."""

    processed_bytes: int
    fraction: Optional[float] = None

    @property
    def percentage(self) -> Optional[float]:
        return None if self.fraction is None else round(self.fraction * 100, 1)
