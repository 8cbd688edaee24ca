from __future__ import annotations

from pathlib import Path

from book_liberator.media.decrypt import DecryptRequest, EngineCallbacks
from book_liberator.media.ffmpeg_engine import FFmpegDecryptEngine, FFmpegHandle, build_ffmetadata
from book_liberator.models.book import ChapterTable, DecryptLicense
from book_liberator.models.config import OutputFormat


def make_handle(tmp_path: Path, output_format=OutputFormat.M4B, callbacks=None) -> FFmpegHandle:
    request = DecryptRequest(
        output_path=tmp_path / "out" / "Book [B01].m4b",
        scratch_dir=tmp_path / "scratch",
        license=DecryptLicense(
            source_url="https://cdn.example.com/B01.aax",
            decryption_key="00112233",
            initialization_vector="44556677",
            user_agent="book-liberator/1.0",
        ),
        output_format=output_format,
        app_name="book-liberator",
    )
    return FFmpegDecryptEngine("ffmpeg").configure(request, callbacks or EngineCallbacks())


class FakeProcess:
    def __init__(self, lines):
        self.stdout = iter(lines)


class TestFFmetadata:
    def test_chapters_are_contiguous(self):
        table = ChapterTable()
        table.add_chapter("Opening Credits", 30000)
        table.add_chapter("Chapter 1", 600000)

        text = build_ffmetadata(table)

        assert text.startswith(";FFMETADATA1\n")
        assert "START=0\nEND=30000\ntitle=Opening Credits" in text
        assert "START=30000\nEND=630000\ntitle=Chapter 1" in text

    def test_special_characters_escaped(self):
        table = ChapterTable()
        table.add_chapter("Part 1; a=b #1", 1000)
        assert "title=Part 1\\; a\\=b \\#1" in build_ffmetadata(table)


class TestBuildCommand:
    def test_lossless_stream_copy(self, tmp_path: Path):
        handle = make_handle(tmp_path)
        cmd = FFmpegDecryptEngine().build_command(handle, tmp_path / "x.partial", None)

        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-audible_key") + 1] == "00112233"
        assert cmd[cmd.index("-audible_iv") + 1] == "44556677"
        assert cmd[cmd.index("-i") + 1] == "https://cdn.example.com/B01.aax"
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[cmd.index("-f") + 1] == "ipod"
        assert "-map_chapters" not in cmd
        assert cmd[-1] == str(tmp_path / "x.partial")

    def test_lossy_with_chapters(self, tmp_path: Path):
        handle = make_handle(tmp_path, OutputFormat.MP3)
        meta = tmp_path / "book.ffmetadata"

        cmd = FFmpegDecryptEngine().build_command(handle, tmp_path / "x.partial", meta)

        assert str(meta) in cmd
        assert cmd[cmd.index("-map_chapters") + 1] == "1"
        assert cmd[cmd.index("-c:a") + 1] == "libmp3lame"
        assert cmd[cmd.index("-f") + 1] == "mp3"


class TestProgress:
    def test_reports_bytes_and_fraction(self, tmp_path: Path):
        seen = []
        handle = make_handle(tmp_path, callbacks=EngineCallbacks(on_progress=seen.append))
        lines = [
            "total_size=2048\n",
            "out_time_us=5000000\n",
            "progress=continue\n",
            "total_size=4096\n",
            "out_time_us=10000000\n",
            "progress=end\n",
        ]

        FFmpegDecryptEngine()._consume_progress(handle, FakeProcess(lines), total_ms=10000)

        assert [p.processed_bytes for p in seen] == [2048, 4096]
        assert [p.fraction for p in seen] == [0.5, 1.0]

    def test_unknown_duration(self, tmp_path: Path):
        seen = []
        handle = make_handle(tmp_path, callbacks=EngineCallbacks(on_progress=seen.append))

        FFmpegDecryptEngine()._consume_progress(
            handle, FakeProcess(["total_size=N/A\n", "progress=end\n"]), total_ms=None
        )

        assert seen[0].processed_bytes == 0
        assert seen[0].fraction is None


class TestCancel:
    def test_cancel_without_process(self, tmp_path: Path):
        handle = make_handle(tmp_path)
        FFmpegDecryptEngine().cancel(handle)
        assert handle.cancel_requested
        assert not handle.quit_sent
