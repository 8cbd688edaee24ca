"""
Storage layout policy for the permanent book library.

Decides where a book's files live and keeps a cached index of the audio files
already present, so the "already liberated?" check does not walk the library
for every item.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Optional, Union

from book_liberator.utils.path import create_dir, get_valid_dirname

log = logging.getLogger(__name__)

AUDIO_EXTENSIONS = frozenset({"m4b", "mp3", "m4a", "mp4", "aac", "flac", "ogg", "opus"})

# Audio stems end in "[<pid>]", optionally followed by a " (n)" collision counter
_PRODUCT_ID_TAG = re.compile(r"\[([^\[\]]+)\](?: \(\d+\))?$")


class StorageLayout:
    """Directory policy and cached listing of audio files in the books directory."""

    def __init__(self, books_dir: Path):
        self.books_dir = Path(books_dir)
        self._audio_index: Optional[dict[str, Path]] = None
        self._index_lock = threading.Lock()

    def get_destination_dir(self, title: str, product_id: str) -> Path:
        """``<books_dir>/<safe title, max 50 chars> [<product_id>]``"""
        return get_valid_dirname(self.books_dir, title, product_id)

    @staticmethod
    def is_audio_type(path: Union[str, Path]) -> bool:
        return Path(path).suffix.lower().lstrip(".") in AUDIO_EXTENSIONS

    def refresh(self) -> None:
        """Rebuilds the cached listing from disk."""
        index: dict[str, Path] = {}
        if self.books_dir.is_dir():
            for path in self.books_dir.rglob("*"):
                if not path.is_file() or not self.is_audio_type(path):
                    continue
                # Titles may carry brackets of their own; only the trailing tag counts
                match = _PRODUCT_ID_TAG.search(path.stem)
                if match:
                    index.setdefault(match.group(1).lower(), path)
        with self._index_lock:
            self._audio_index = index
        log.debug(f"Indexed {len(index)} audio files under '{self.books_dir}'.")

    def _index(self) -> dict[str, Path]:
        with self._index_lock:
            index = self._audio_index
        if index is None:
            self.refresh()
            with self._index_lock:
                index = self._audio_index
        return index

    def find_audio(self, product_id: str) -> Optional[Path]:
        """Final audio file of a product, if the cached listing knows one."""
        path = self._index().get(product_id.lower())
        if path is not None and not path.exists():
            return None
        return path

    def audio_exists(self, product_id: str) -> bool:
        return self.find_audio(product_id) is not None

    def ensure_directories(self, *extra: Path) -> None:
        for directory in (self.books_dir, *extra):
            create_dir(directory)
