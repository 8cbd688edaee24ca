from __future__ import annotations

from pathlib import Path

from book_liberator.utils.formatting import format_duration, format_size, title_sans_unabridged
from book_liberator.utils.path import (
    get_valid_dirname,
    get_valid_filename,
    to_path_safe_string,
)

ALIEN = "Alien: Out of the Shadows: An Audible Original Drama"


class TestValidFilename:
    def test_audio_and_sidecar_names(self, tmp_path: Path):
        assert get_valid_filename(tmp_path, "Test Book", "m4b", "X1").name == "Test Book [X1].m4b"
        assert (
            get_valid_filename(tmp_path, "Test Book", "cue", "X1", "m4b").name
            == "Test Book [X1][m4b].cue"
        )

    def test_collision_counter(self, tmp_path: Path):
        (tmp_path / "Test Book [X1].m4b").touch()
        (tmp_path / "Test Book [X1] (1).m4b").touch()
        assert get_valid_filename(tmp_path, "Test Book", "m4b", "X1").name == "Test Book [X1] (2).m4b"

    def test_long_title_is_deterministic_and_safe(self, tmp_path: Path):
        first = get_valid_filename(tmp_path, ALIEN, "m4b", "B000ABC123")
        second = get_valid_filename(tmp_path, ALIEN, "m4b", "B000ABC123")

        assert first == second
        assert "[B000ABC123]" in first.name
        assert ":" not in first.name
        assert len(first.name.split(" [B000ABC123]")[0]) <= 50

    def test_dirname(self, tmp_path: Path):
        assert get_valid_dirname(tmp_path, "Test Book", "X1") == tmp_path / "Test Book [X1]"


class TestSafeStrings:
    def test_strips_reserved_characters(self):
        safe = to_path_safe_string('What? "Why" <now>: a/b')
        assert not any(c in safe for c in '?"<>:/')
        assert "  " not in safe

    def test_unabridged_marker(self):
        assert title_sans_unabridged("Dune (Unabridged)") == "Dune"
        assert title_sans_unabridged("Dune") == "Dune"
        assert title_sans_unabridged(None) == "[unknown]"


class TestFormatting:
    def test_size(self):
        assert format_size(0) == "0 B"
        assert format_size(1536) == "1.5 KB"

    def test_duration(self):
        assert format_duration(0) == "0s"
        assert format_duration(3725) == "1h 2m 5s"
