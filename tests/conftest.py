from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Optional

import pytest

from book_liberator.api.client import ContentLicense
from book_liberator.core.events import EventBus, LiberationEvent
from book_liberator.media.decrypt import DecryptRequest, EngineCallbacks, EngineHandle
from book_liberator.models.book import AcquisitionItem
from book_liberator.models.config import LiberatorConfig
from book_liberator.models.status import DecryptProgress
from book_liberator.storage.catalog import LibraryCatalog
from book_liberator.storage.layout import StorageLayout


class FakeEngine:
    """
    Deterministic stand-in for a decrypt engine.

    mode:
        "success": writes the audio file (plus sidecars) and returns True
        "fail":    returns False without writing anything
        "raise":   raises RuntimeError
        "missing": returns True without writing anything
        "block":   waits until cancelled, then returns False
    """

    def __init__(
        self,
        mode: str = "success",
        sidecars: tuple[str, ...] = ("cue",),
        cover: Optional[bytes] = b"\xff\xd8cover",
        tags: tuple = ("Test Book (Unabridged)", "Jane Author", None),
    ):
        self.mode = mode
        self.sidecars = sidecars
        self.cover = cover
        self.tags = tags
        self.run_calls = 0
        self.cancel_calls = 0
        self.covers_set: list[bytes] = []
        self.started = threading.Event()
        self.requests: list[DecryptRequest] = []

    def configure(self, request: DecryptRequest, callbacks: EngineCallbacks) -> EngineHandle:
        self.requests.append(request)
        return EngineHandle(request=request, callbacks=callbacks)

    def run(self, handle: EngineHandle) -> bool:
        self.run_calls += 1
        self.started.set()
        if self.mode == "fail":
            return False
        if self.mode == "raise":
            raise RuntimeError("engine exploded")
        if self.mode == "block":
            handle.cancel_event.wait(timeout=5)
            return False
        if self.mode == "missing":
            return True

        output = handle.request.output_path
        output.parent.mkdir(parents=True, exist_ok=True)
        handle.callbacks.on_progress(DecryptProgress(512, 0.5))
        output.write_bytes(b"audio-bytes")
        for ext in self.sidecars:
            sidecar = output.with_suffix(f".{ext}")
            if ext == "cue":
                sidecar.write_text(
                    f'FILE "{output.name}" MP4\n  TRACK 01 AUDIO\n    INDEX 01 00:00:00\n',
                    encoding="utf-8",
                )
            else:
                sidecar.write_text("sidecar", encoding="utf-8")
        handle.callbacks.on_progress(DecryptProgress(1024, 1.0))
        handle.callbacks.on_tags(*self.tags)
        handle.callbacks.on_cover_art(self.cover)
        return True

    def cancel(self, handle: EngineHandle) -> None:
        self.cancel_calls += 1
        handle.cancel_event.set()

    def set_cover_art(self, handle: EngineHandle, data: bytes) -> None:
        self.covers_set.append(data)


class FakeLicenseClient:
    def __init__(self, delay: float = 0, error: Optional[Exception] = None, chapters=None):
        self.delay = delay
        self.error = error
        self.chapters = chapters or [
            {"title": "Opening Credits", "length_ms": 30000},
            {"title": "Chapter 1", "length_ms": 600000},
        ]
        self.calls: list[str] = []

    async def get_download_license(self, product_id: str) -> ContentLicense:
        self.calls.append(product_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ContentLicense(
            product_id=product_id,
            content_url=f"https://cdn.example.com/{product_id}.aax",
            key="0123456789abcdef0123456789abcdef",
            iv="fedcba9876543210fedcba9876543210",
            chapters=list(self.chapters),
        )


class EventRecorder:
    def __init__(self):
        self.events: list[LiberationEvent] = []

    def __call__(self, event: LiberationEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list:
        return [e.type for e in self.events]


@pytest.fixture
def config(tmp_path: Path) -> LiberatorConfig:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return LiberatorConfig(
        books_dir=tmp_path / "Books",
        downloads_in_progress_dir=tmp_path / "DownloadsInProgress",
        decrypt_in_progress_dir=tmp_path / "DecryptInProgress",
        allow_fixup=False,
        config_path=str(config_dir),
    )


@pytest.fixture
def catalog(config: LiberatorConfig) -> LibraryCatalog:
    return LibraryCatalog(Path(config.config_path))


@pytest.fixture
def layout(config: LiberatorConfig) -> StorageLayout:
    return StorageLayout(config.books_dir)


@pytest.fixture
def item() -> AcquisitionItem:
    return AcquisitionItem("X1", "Test Book", locale="us", account="reader@example.com")


@pytest.fixture
def cataloged_item(catalog: LibraryCatalog, item: AcquisitionItem) -> AcquisitionItem:
    catalog.add_item_sync(item)
    return item


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def license_client() -> FakeLicenseClient:
    return FakeLicenseClient()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def events(recorder: EventRecorder) -> EventBus:
    bus = EventBus(log_events=False)
    bus.subscribe(recorder)
    return bus
