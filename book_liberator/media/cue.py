"""
Reading and writing of cue sheets that accompany a decrypted audiobook.
"""

import logging
import re
from pathlib import Path
from typing import Iterable

from book_liberator.models.book import ChapterTable

log = logging.getLogger(__name__)

CUE_FRAMES_PER_SECOND = 75
_FILE_LINE = re.compile(r'^(?P<indent>\s*)FILE\s+(?:"[^"]*"|\S+)(?P<rest>.*)$', re.IGNORECASE)


def _file_type(audio_path: Path) -> str:
    return "MP3" if audio_path.suffix.lower() == ".mp3" else "MP4"


def _cue_timestamp(offset_ms: int) -> str:
    total_frames = offset_ms * CUE_FRAMES_PER_SECOND // 1000
    seconds, frames = divmod(total_frames, CUE_FRAMES_PER_SECOND)
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes:02d}:{seconds:02d}:{frames:02d}"


def _quote(value: str) -> str:
    return value.replace('"', "'")


def build_cue_sheet(audio_path: Path, chapters: ChapterTable, title: str = "") -> str:
    """Renders a single-file cue sheet with one track per chapter."""
    lines: list[str] = []
    if title:
        lines.append(f'TITLE "{_quote(title)}"')
    lines.append(f'FILE "{_quote(audio_path.name)}" {_file_type(audio_path)}')
    for number, (chapter, offset) in enumerate(
        zip(chapters, chapters.start_offsets_ms()), start=1
    ):
        lines.append(f"  TRACK {number:02d} AUDIO")
        lines.append(f'    TITLE "{_quote(chapter.title)}"')
        lines.append(f"    INDEX 01 {_cue_timestamp(offset)}")
    return "\n".join(lines) + "\n"


def write_cue_sheet(
    cue_path: Path, audio_path: Path, chapters: ChapterTable, title: str = ""
) -> Path:
    cue_path.write_text(build_cue_sheet(audio_path, chapters, title), encoding="utf-8")
    return cue_path


def rewrite_file_lines(lines: Iterable[str], audio_filename: str) -> list[str]:
    """Points every FILE entry at `audio_filename`, keeping the declared file type."""
    rewritten = []
    for line in lines:
        match = _FILE_LINE.match(line)
        if match:
            rest = match.group("rest").strip() or "MP4"
            line = f'{match.group("indent")}FILE "{_quote(audio_filename)}" {rest}'
        rewritten.append(line)
    return rewritten


def update_file_name(cue_path: Path, audio_filename: str) -> None:
    """
    Rewrites the audio reference of a cue sheet in place.

    Cue sheets reference their audio by file name, so they must follow the audio
    file whenever it is renamed.
    """
    text = cue_path.read_text(encoding="utf-8-sig")
    updated = rewrite_file_lines(text.splitlines(), audio_filename)
    cue_path.write_text("\n".join(updated) + "\n", encoding="utf-8")
    log.debug(f"Cue sheet '{cue_path.name}' now references '{audio_filename}'.")
