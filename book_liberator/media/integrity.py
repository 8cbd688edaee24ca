"""
Post-decrypt sanity checks on a produced audiobook file.

A file passes when mutagen can read a playable stream from it and, when a
chapter table was supplied, the stream is about as long as the chapters add up
to. A short stream usually means the source was cut off mid-transfer.
"""

import logging
from datetime import timedelta
from typing import Optional

from mutagen import MutagenError
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4

from book_liberator.utils.formatting import format_duration

log = logging.getLogger(__name__)

# Largest accepted gap between the chapter table and the stream
MIN_DURATION_SLACK = timedelta(seconds=5)
DURATION_SLACK_RATIO = 0.01


class FileIntegrityChecker:
    """Validates decrypted output files with mutagen."""

    @staticmethod
    def stream_length(filepath: str) -> Optional[float]:
        """Playable length in seconds, or None when no audio stream can be read."""
        reader = MP3 if filepath.lower().endswith(".mp3") else MP4
        try:
            info = reader(filepath).info
        except (MutagenError, OSError) as e:
            log.warning(f"Integrity check could not read '{filepath}': {e}")
            return None
        if not info or info.length <= 0:
            return None
        return info.length

    @staticmethod
    def duration_matches(length: float, expected: timedelta) -> bool:
        expected_s = expected.total_seconds()
        slack = max(MIN_DURATION_SLACK.total_seconds(), expected_s * DURATION_SLACK_RATIO)
        return abs(length - expected_s) <= slack

    @classmethod
    def check(cls, filepath: str, expected_duration: Optional[timedelta] = None) -> bool:
        length = cls.stream_length(filepath)
        if length is None:
            log.warning(f"Integrity check failed for '{filepath}': no playable audio stream.")
            return False
        if expected_duration and not cls.duration_matches(length, expected_duration):
            log.warning(
                f"Integrity check failed for '{filepath}': stream runs "
                f"{format_duration(length)}, chapters add up to "
                f"{format_duration(expected_duration.total_seconds())}."
            )
            return False
        return True
