"""
Utilities for building filesystem-safe names for library files and directories.
"""

from pathlib import Path
from typing import Union

from pathvalidate import sanitize_filename

# Titles are cut to this many characters before the bracketed metadata is added
MAX_TITLE_LENGTH = 50


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def to_path_safe_string(value: str) -> str:
    """Strips characters that are invalid in a filename on any common platform."""
    safe = sanitize_filename(value or "", platform="universal")
    return " ".join(safe.split())


def limit_title(title: str) -> str:
    """Path-safe title cut to MAX_TITLE_LENGTH characters."""
    return to_path_safe_string(title)[:MAX_TITLE_LENGTH].strip()


def _with_metadata(title: str, metadata_suffixes: tuple[str, ...]) -> str:
    name = limit_title(title)
    suffixes = [s for s in (to_path_safe_string(m) for m in metadata_suffixes) if s]
    if suffixes:
        brackets = "[" + "][".join(suffixes) + "]"
        name = f"{name} {brackets}" if name else brackets
    return name


def get_valid_filename(
    directory: Union[str, Path],
    title: str,
    extension: str,
    *metadata_suffixes: str,
) -> Path:
    """
    Builds a collision-free file path inside `directory`.

    The name is ``<safe title> [<suffix1>][<suffix2>]...<.ext>``, with the title cut
    to 50 characters. If the path is taken, a `` (n)`` counter is appended
    before the extension.

    Example:
        >>> get_valid_filename("/books", "Test Book", "cue", "X1", "m4b").name
        'Test Book [X1][m4b].cue'
    """
    directory = Path(directory)
    extension = extension.strip().lstrip(".")
    ext = f".{extension}" if extension else ""
    stem = _with_metadata(title, metadata_suffixes)

    candidate = directory / f"{stem}{ext}"
    counter = 0
    while candidate.exists():
        counter += 1
        candidate = directory / f"{stem} ({counter}){ext}"
    return candidate


def get_valid_dirname(parent: Union[str, Path], title: str, *metadata_suffixes: str) -> Path:
    """Directory counterpart of :func:`get_valid_filename`, without the counter."""
    return Path(parent) / _with_metadata(title, metadata_suffixes)
