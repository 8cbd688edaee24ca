"""
Capability interface of a decrypt/transcode engine and the adapter that
connects it to the liberation event protocol.

An engine is configured once per run, runs to completion on a worker thread and
reports what it finds through a fixed set of callbacks. The adapter turns those
callbacks into pipeline events and makes cancellation safe at any moment.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional, Protocol

from book_liberator.core.events import EventBus, EventType
from book_liberator.models.book import AcquisitionItem, DecryptLicense
from book_liberator.models.config import OutputFormat, get_format_info
from book_liberator.models.status import DecryptProgress
from book_liberator.utils.formatting import or_unknown, title_sans_unabridged
from book_liberator.utils.path import limit_title

log = logging.getLogger(__name__)


def _ignore(*_args) -> None:
    return None


@dataclass
class EngineCallbacks:
    on_progress: Callable[[DecryptProgress], None] = _ignore
    on_time_remaining: Callable[[timedelta], None] = _ignore
    on_cover_art: Callable[[Optional[bytes]], None] = _ignore
    on_tags: Callable[[Optional[str], Optional[str], Optional[str]], None] = _ignore


@dataclass(frozen=True)
class DecryptRequest:
    output_path: Path
    scratch_dir: Path
    license: DecryptLicense
    output_format: OutputFormat
    app_name: str


@dataclass
class EngineHandle:
    """Per-run state shared by the adapter and an engine. Engines may subclass it."""

    request: DecryptRequest
    callbacks: EngineCallbacks
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)
    started: bool = False
    finished: bool = False

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()


class DecryptEngine(Protocol):
    """What the pipeline needs from a decrypt/transcode engine."""

    def configure(self, request: DecryptRequest, callbacks: EngineCallbacks) -> EngineHandle:
        """Builds a handle for one run. Must not touch the filesystem or network."""
        ...

    def run(self, handle: EngineHandle) -> bool:
        """Blocking. True when the output file was produced."""
        ...

    def cancel(self, handle: EngineHandle) -> None:
        """Cooperative; the running `run` should unwind and return False."""
        ...

    def set_cover_art(self, handle: EngineHandle, data: bytes) -> None:
        """Artwork to embed when the source carried none."""
        ...


def output_path_for(
    directory: Path, title: str, product_id: str, output_format: OutputFormat
) -> Path:
    """``<directory>/<safe title> [<product_id>].<m4b|mp3>``"""
    ext = get_format_info(output_format)["ext"]
    return Path(directory) / f"{limit_title(title)} [{product_id}].{ext}"


class _EventTranslator:
    """Turns one run's engine callbacks into events for `item`."""

    def __init__(
        self, item: AcquisitionItem, events: EventBus, engine: DecryptEngine, allow_fixup: bool
    ):
        self.item = item
        self.events = events
        self.engine = engine
        self.allow_fixup = allow_fixup
        self.handle: Optional[EngineHandle] = None

    def callbacks(self) -> EngineCallbacks:
        return EngineCallbacks(
            on_progress=self.on_progress,
            on_time_remaining=self.on_time_remaining,
            on_cover_art=self.on_cover_art,
            on_tags=self.on_tags,
        )

    def on_progress(self, progress: DecryptProgress) -> None:
        self.events.emit(EventType.DECRYPT_PROGRESS, self.item, progress)

    def on_time_remaining(self, remaining: timedelta) -> None:
        self.events.emit(EventType.TIME_REMAINING, self.item, remaining)

    def on_cover_art(self, data: Optional[bytes]) -> None:
        if data:
            self.events.emit(EventType.COVER_ART_DISCOVERED, self.item, data)
        elif self.allow_fixup and self.handle is not None:
            self.events.emit(EventType.COVER_ART_REQUESTED, self.item, self.inject_cover_art)

    def inject_cover_art(self, data: bytes) -> None:
        if self.handle is None or not data:
            return
        self.engine.set_cover_art(self.handle, data)

    def on_tags(self, title: Optional[str], author: Optional[str], narrator: Optional[str]) -> None:
        self.events.emit(EventType.TITLE_DISCOVERED, self.item, title_sans_unabridged(title))
        self.events.emit(EventType.AUTHORS_DISCOVERED, self.item, or_unknown(author))
        self.events.emit(EventType.NARRATORS_DISCOVERED, self.item, or_unknown(narrator))


class DecryptEngineAdapter:
    """Bridges the orchestrator and a pluggable DecryptEngine."""

    def __init__(
        self,
        engine: DecryptEngine,
        events: EventBus,
        allow_fixup: bool = False,
        app_name: str = "book-liberator",
    ):
        self.engine = engine
        self.events = events
        self.allow_fixup = allow_fixup
        self.app_name = app_name

    def configure(
        self,
        item: AcquisitionItem,
        output_path: Path,
        scratch_dir: Path,
        license: DecryptLicense,
        output_format: OutputFormat,
    ) -> EngineHandle:
        request = DecryptRequest(
            output_path=Path(output_path),
            scratch_dir=Path(scratch_dir),
            license=license,
            output_format=output_format,
            app_name=self.app_name,
        )
        translator = _EventTranslator(item, self.events, self.engine, self.allow_fixup)
        handle = self.engine.configure(request, translator.callbacks())
        translator.handle = handle
        return handle

    def run(self, handle: EngineHandle) -> bool:
        """Blocking; callers run this off the event loop."""
        # Set before the cancel check: any cancel after it is forwarded to the engine
        handle.started = True
        if handle.cancel_requested:
            log.debug("Decrypt cancelled before it started.")
            handle.finished = True
            return False
        try:
            return bool(self.engine.run(handle)) and not handle.cancel_requested
        finally:
            handle.finished = True

    def cancel(self, handle: Optional[EngineHandle]) -> None:
        """No-op without a handle or once the run has finished."""
        if handle is None or handle.finished:
            return
        handle.cancel_event.set()
        if handle.started:
            self.engine.cancel(handle)
