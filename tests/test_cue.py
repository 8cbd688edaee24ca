from __future__ import annotations

from pathlib import Path

from book_liberator.media.cue import build_cue_sheet, rewrite_file_lines, update_file_name
from book_liberator.models.book import ChapterTable


def chapters() -> ChapterTable:
    table = ChapterTable()
    table.add_chapter("Opening Credits", 30_000)
    table.add_chapter("Chapter 1", 61_500)
    return table


class TestCueSheet:
    def test_build(self):
        text = build_cue_sheet(Path("Book [X1].m4b"), chapters(), "Book")
        lines = text.splitlines()
        assert lines[0] == 'TITLE "Book"'
        assert lines[1] == 'FILE "Book [X1].m4b" MP4'
        assert '    TITLE "Chapter 1"' in lines
        assert lines[-1] == "    INDEX 01 00:30:00"

    def test_mp3_file_type(self):
        assert 'FILE "Book.mp3" MP3' in build_cue_sheet(Path("Book.mp3"), chapters())

    def test_rewrite_keeps_file_type(self):
        lines = rewrite_file_lines(['FILE "old name.mp3" MP3', "  TRACK 01 AUDIO"], "new.mp3")
        assert lines == ['FILE "new.mp3" MP3', "  TRACK 01 AUDIO"]

    def test_update_in_place(self, tmp_path: Path):
        cue = tmp_path / "a.cue"
        cue.write_text('TITLE "A"\nFILE unquoted.m4b MP4\n  TRACK 01 AUDIO\n', encoding="utf-8")

        update_file_name(cue, "Final [X1].m4b")

        assert cue.read_text(encoding="utf-8").splitlines() == [
            'TITLE "A"',
            'FILE "Final [X1].m4b" MP4',
            "  TRACK 01 AUDIO",
        ]
