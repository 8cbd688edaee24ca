"""
Media Processing Layer.

This package is responsible for all media file operations: the decrypt engine
interface and its ffmpeg implementation, cue sheets, metadata tagging, and
integrity validation.
"""

from .decrypt import DecryptEngine, DecryptEngineAdapter, EngineCallbacks, EngineHandle
from .ffmpeg_engine import FFmpegDecryptEngine
from .integrity import FileIntegrityChecker
from .tagger import Tagger

__all__ = [
    "DecryptEngine",
    "DecryptEngineAdapter",
    "EngineCallbacks",
    "EngineHandle",
    "FFmpegDecryptEngine",
    "FileIntegrityChecker",
    "Tagger",
]
