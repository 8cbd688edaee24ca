"""
A DecryptEngine backed by the ffmpeg command-line tool.

ffmpeg reads the encrypted stream straight from the license URL using the
voucher's key and IV, then either stream-copies it into an M4B container or
transcodes it to MP3. Progress is read from ffmpeg's machine-readable
`-progress` output.
"""

import logging
import subprocess
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional

from book_liberator.media.cue import write_cue_sheet
from book_liberator.media.decrypt import DecryptRequest, EngineCallbacks, EngineHandle
from book_liberator.media.integrity import FileIntegrityChecker
from book_liberator.media.tagger import Tagger
from book_liberator.models.book import ChapterTable
from book_liberator.models.config import OutputFormat
from book_liberator.models.status import DecryptProgress
from book_liberator.utils.path import create_dir

log = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


@dataclass
class FFmpegHandle(EngineHandle):
    process: Optional[subprocess.Popen] = field(default=None, repr=False)
    pending_cover: Optional[bytes] = field(default=None, repr=False)
    quit_sent: bool = False
    _io_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def _escape_ffmetadata(value: str) -> str:
    for char in ("\\", "=", ";", "#", "\n"):
        value = value.replace(char, "\\" + char)
    return value


def build_ffmetadata(chapters: ChapterTable) -> str:
    """Chapter list in ffmpeg's FFMETADATA1 format (millisecond timebase)."""
    lines = [";FFMETADATA1"]
    for chapter, start in zip(chapters, chapters.start_offsets_ms()):
        lines += [
            "[CHAPTER]",
            "TIMEBASE=1/1000",
            f"START={start}",
            f"END={start + chapter.duration_ms}",
            f"title={_escape_ffmetadata(chapter.title)}",
        ]
    return "\n".join(lines) + "\n"


class FFmpegDecryptEngine:
    """Runs one ffmpeg process per decrypt run."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", tagger: Optional[Tagger] = None):
        self.ffmpeg_path = ffmpeg_path
        self.tagger = tagger or Tagger()

    def configure(self, request: DecryptRequest, callbacks: EngineCallbacks) -> FFmpegHandle:
        return FFmpegHandle(request=request, callbacks=callbacks)

    def build_command(
        self, handle: FFmpegHandle, partial_path: Path, metadata_path: Optional[Path]
    ) -> list[str]:
        request = handle.request
        lic = request.license
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostats",
            "-loglevel", "error",
            "-y",
            "-user_agent", lic.user_agent,
            "-audible_key", lic.decryption_key,
            "-audible_iv", lic.initialization_vector,
            "-i", lic.source_url,
        ]  # fmt: skip
        if metadata_path is not None:
            cmd += ["-i", str(metadata_path), "-map_chapters", "1"]

        if request.output_format == OutputFormat.MP3:
            cmd += [
                "-map", "0:a",
                "-c:a", "libmp3lame",
                "-q:a", "2",
                "-id3v2_version", "3",
                "-f", "mp3",
            ]  # fmt: skip
        else:
            cmd += ["-c", "copy", "-f", "ipod"]

        cmd += [
            "-metadata", f"encoded_by={request.app_name}",
            "-progress", "pipe:1",
            str(partial_path),
        ]  # fmt: skip
        return cmd

    def run(self, handle: FFmpegHandle) -> bool:
        request = handle.request
        output = request.output_path
        partial = output.with_name(output.name + PARTIAL_SUFFIX)
        chapters = request.license.chapter_table or None

        create_dir(output.parent)
        create_dir(request.scratch_dir)
        metadata_path = request.scratch_dir / f"{output.stem}.ffmetadata"
        log_path = request.scratch_dir / f"{output.stem}.ffmpeg.log"

        try:
            if chapters:
                metadata_path.write_text(build_ffmetadata(chapters), encoding="utf-8")
            cmd = self.build_command(handle, partial, metadata_path if chapters else None)
            total_ms = chapters.total_duration.total_seconds() * 1000 if chapters else None

            with open(log_path, "w", encoding="utf-8") as stderr_file:
                try:
                    process = subprocess.Popen(
                        cmd,
                        stdin=subprocess.PIPE,
                        stdout=subprocess.PIPE,
                        stderr=stderr_file,
                        text=True,
                        encoding="utf-8",
                        errors="replace",
                    )
                except OSError as e:
                    log.error(f"[red]Could not start ffmpeg ('{self.ffmpeg_path}'): {e}[/red]")
                    return False

                handle.process = process
                if handle.cancel_requested:
                    self._request_quit(handle)
                self._consume_progress(handle, process, total_ms)
                returncode = process.wait()

            if handle.cancel_requested:
                log.info(f"[yellow]Decrypt of '{output.name}' cancelled.[/yellow]")
                return False
            if returncode != 0:
                log.error(
                    f"[red]ffmpeg exited with code {returncode} for '{output.name}':[/red] "
                    f"{self._tail(log_path)}"
                )
                return False

            partial.replace(output)
            expected = chapters.total_duration if chapters else None
            if not FileIntegrityChecker.check(str(output), expected):
                output.unlink(missing_ok=True)
                return False

            self._finish(handle, output, chapters)
            return True
        finally:
            handle.process = None
            partial.unlink(missing_ok=True)
            metadata_path.unlink(missing_ok=True)
            log_path.unlink(missing_ok=True)

    def _consume_progress(
        self, handle: FFmpegHandle, process: subprocess.Popen, total_ms: Optional[float]
    ) -> None:
        started = time.monotonic()
        block: dict[str, str] = {}
        for raw_line in process.stdout:
            if handle.cancel_requested:
                self._request_quit(handle)
            key, _, value = raw_line.strip().partition("=")
            if not key:
                continue
            block[key] = value
            if key != "progress":
                continue

            total_size = block.get("total_size", "")
            processed = int(total_size) if total_size.isdigit() else 0
            fraction = None
            out_us = block.get("out_time_us", "")
            if total_ms and out_us.lstrip("-").isdigit():
                fraction = min(max(int(out_us) / 1000 / total_ms, 0.0), 1.0)

            handle.callbacks.on_progress(DecryptProgress(processed, fraction))
            if fraction and fraction > 0:
                elapsed = time.monotonic() - started
                remaining = elapsed * (1 - fraction) / fraction
                handle.callbacks.on_time_remaining(timedelta(seconds=remaining))
            block = {}

    def _finish(
        self, handle: FFmpegHandle, output: Path, chapters: Optional[ChapterTable]
    ) -> None:
        tags = self.tagger.read_tags(str(output))
        if chapters:
            write_cue_sheet(output.with_suffix(".cue"), output, chapters, tags.title or "")

        handle.callbacks.on_tags(tags.title, tags.author, tags.narrator)
        # Listeners may answer a missing cover synchronously via set_cover_art
        handle.callbacks.on_cover_art(self.tagger.read_cover(str(output)))
        if handle.pending_cover:
            self.tagger.embed_cover(str(output), handle.pending_cover)

    def _request_quit(self, handle: FFmpegHandle) -> None:
        """Asks ffmpeg to stop after the current packet, like pressing 'q'."""
        with handle._io_lock:
            process = handle.process
            if handle.quit_sent or process is None or process.poll() is not None:
                return
            try:
                process.stdin.write("q")
                process.stdin.flush()
                handle.quit_sent = True
            except (BrokenPipeError, OSError) as e:
                log.debug(f"Could not signal ffmpeg to quit: {e}")

    def cancel(self, handle: FFmpegHandle) -> None:
        handle.cancel_event.set()
        self._request_quit(handle)

    def set_cover_art(self, handle: FFmpegHandle, data: bytes) -> None:
        handle.pending_cover = data
        if handle.finished and handle.request.output_path.exists():
            self.tagger.embed_cover(str(handle.request.output_path), data)

    @staticmethod
    def _tail(log_path: Path, lines: int = 5) -> str:
        try:
            return " | ".join(log_path.read_text(encoding="utf-8").splitlines()[-lines:])
        except OSError:
            return "(no ffmpeg output)"
