"""
Data Models Layer.

This package contains the Pydantic configuration model and the dataclasses that
define the core data structures used throughout the application: library items,
licenses, run results and session statistics.
"""

from .book import AcquisitionItem, Chapter, ChapterTable, DecryptLicense, LiberatedStatus
from .config import LiberatorConfig, OutputFormat
from .stats import AcquisitionStats
from .status import DecryptProgress, PlacementResult, StatusResult

__all__ = [
    "AcquisitionItem",
    "AcquisitionStats",
    "Chapter",
    "ChapterTable",
    "DecryptLicense",
    "DecryptProgress",
    "LiberatedStatus",
    "LiberatorConfig",
    "OutputFormat",
    "PlacementResult",
    "StatusResult",
]
