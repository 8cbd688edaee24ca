"""
Orchestrates the liberation of a single book.

A run walks through validate -> fetch license -> decrypt -> place files ->
mark liberated, broadcasting events on the way. The catalog is only touched as
the very last step, after the audio file is confirmed to be in the library.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Optional

from book_liberator.api.client import ContentLicense, LicenseClient
from book_liberator.exceptions import ConfigurationError, LiberatorError, PlacementError
from book_liberator.media.decrypt import (
    DecryptEngine,
    DecryptEngineAdapter,
    EngineHandle,
    output_path_for,
)
from book_liberator.models.book import (
    AcquisitionItem,
    ChapterTable,
    DecryptLicense,
    LiberatedStatus,
)
from book_liberator.models.config import LiberatorConfig
from book_liberator.models.status import StatusResult
from book_liberator.storage.catalog import LibraryCatalog
from book_liberator.storage.layout import StorageLayout

from .events import EventBus, EventType
from .placement import FilePlacementEngine
from .validation import ValidationGate

log = logging.getLogger(__name__)

ALREADY_EXISTS = "Final audio file already exists"
DECRYPT_FAILED = "Decrypt failed"
DECRYPT_CANCELLED = "Decrypt cancelled"
AUDIO_NOT_FOUND = "Cannot find final audio file after decryption"

LicenseClientProvider = Callable[[str, str], LicenseClient]


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    DECRYPTING = "decrypting"
    PLACING = "placing"
    LIBERATED = "liberated"
    FAILED = "failed"


class LiberationPipeline:
    """Runs the acquisition of one item at a time."""

    def __init__(
        self,
        config: LiberatorConfig,
        catalog: LibraryCatalog,
        layout: StorageLayout,
        engine: DecryptEngine,
        license_clients: LicenseClientProvider,
        events: Optional[EventBus] = None,
        gate: Optional[ValidationGate] = None,
        placement: Optional[FilePlacementEngine] = None,
    ):
        """
        Args:
            config: Directories, output format and fixup settings.
            catalog: Receives the LIBERATED status on success.
            layout: Answers "already liberated?" and locates the library.
            engine: The decrypt/transcode engine.
            license_clients: Returns the license client for (account, locale).
            events: Bus the run's events are broadcast on.
            gate: Account/locale checks run before any remote call.
            placement: Moves output files into the library.
        """
        self.config = config
        self.catalog = catalog
        self.layout = layout
        self.license_clients = license_clients
        self.events = events or EventBus()
        self.gate = gate or ValidationGate()
        self.placement = placement or FilePlacementEngine(layout)
        self.adapter = DecryptEngineAdapter(
            engine, self.events, allow_fixup=config.allow_fixup, app_name=config.app_name
        )

        self.state = PipelineState.IDLE
        self._cancel_requested = False
        self._license_task: Optional[asyncio.Future] = None
        self._handle: Optional[EngineHandle] = None

    def validate(self, item: AcquisitionItem) -> bool:
        """False when the book's final audio file is already in the library."""
        return not self.layout.audio_exists(item.product_id)

    async def process(self, item: AcquisitionItem) -> StatusResult:
        """
        Liberates `item`.

        Returns exactly one StatusResult. Failures are reported in the result and
        never raised; only cancellation of the calling task propagates.
        """
        self.state = PipelineState.IDLE
        self._cancel_requested = False
        self.events.emit(EventType.RUN_BEGIN, item)
        try:
            if not self.validate(item):
                log.info(f"[yellow]○ {item}: {ALREADY_EXISTS}[/yellow]")
                self.state = PipelineState.LIBERATED
                return StatusResult.success(ALREADY_EXISTS)

            result = await self._run(item)
        except LiberatorError as e:
            result = StatusResult.failure(str(e))
        except Exception as e:
            log.error(
                f"[red]✗ Unexpected error while liberating {item}: {e}[/red]",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            result = StatusResult.failure(f"Unexpected error: {e}")
        finally:
            self.events.emit(EventType.RUN_COMPLETED, item)

        if not result.is_success:
            self.state = PipelineState.FAILED
            log.error(f"[red]✗ {item}: {result}[/red]")
        return result

    async def _run(self, item: AcquisitionItem) -> StatusResult:
        audio_output = await self._decrypt(item)
        if isinstance(audio_output, StatusResult):
            return audio_output

        self.state = PipelineState.PLACING
        try:
            placed = await asyncio.to_thread(self.placement.place, item, audio_output)
        except OSError as e:
            raise PlacementError(f"Could not move files into the library: {e}") from e
        if not placed.audio_file_moved:
            return StatusResult.failure(AUDIO_NOT_FOUND)

        self.events.emit(EventType.STATUS_UPDATE, item, f"Liberated to {placed.audio_path}")
        await self.catalog.update_status(item.product_id, LiberatedStatus.LIBERATED)
        item.status = LiberatedStatus.LIBERATED
        self.state = PipelineState.LIBERATED
        log.info(f"[green]✓ {item}[/green]")
        return StatusResult.success()

    async def _decrypt(self, item: AcquisitionItem) -> "Path | StatusResult":
        """Path of the decrypted audio file, or the failure that stopped the run."""
        self.events.emit(EventType.DECRYPT_BEGIN, item, f"Begin decrypting {item}")
        try:
            self.state = PipelineState.VALIDATING
            check = self.gate.check(item)
            if not check:
                raise ConfigurationError(check.reason)

            self.state = PipelineState.DECRYPTING
            license = await self._fetch_license(item)
            if license is None:
                return StatusResult.failure(DECRYPT_CANCELLED)

            output_path = output_path_for(
                self.config.decrypt_in_progress_dir,
                item.title,
                item.product_id,
                self.config.output_format,
            )
            handle = self.adapter.configure(
                item,
                output_path,
                self.config.downloads_in_progress_dir,
                license,
                self.config.output_format,
            )
            self._handle = handle
            if self._cancel_requested:
                self.adapter.cancel(handle)

            try:
                succeeded = await asyncio.to_thread(self.adapter.run, handle)
            except Exception as e:
                log.error(
                    f"[red]Decrypt engine raised for {item}: {e}[/red]",
                    exc_info=log.getEffectiveLevel() == logging.DEBUG,
                )
                succeeded = False

            if not succeeded:
                cancelled = self._cancel_requested or handle.cancel_requested
                return StatusResult.failure(DECRYPT_CANCELLED if cancelled else DECRYPT_FAILED)
            return output_path
        finally:
            self._handle = None
            self._license_task = None
            self.events.emit(EventType.DECRYPT_COMPLETED, item, f"Finished decrypting {item}")

    async def _fetch_license(self, item: AcquisitionItem) -> Optional[DecryptLicense]:
        """The run's license, or None when the fetch was cancelled through `cancel()`."""
        client = self.license_clients(item.account, item.locale)
        self._license_task = asyncio.ensure_future(
            client.get_download_license(item.product_id)
        )
        if self._cancel_requested:
            self._license_task.cancel()
        try:
            content = await self._license_task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._cancel_requested and not (current and current.cancelling()):
                return None
            raise
        return self._to_decrypt_license(content)

    def _to_decrypt_license(self, content: ContentLicense) -> DecryptLicense:
        chapter_table = None
        if self.config.allow_fixup:
            chapter_table = ChapterTable()
            for chapter in content.chapters:
                chapter_table.add_chapter(
                    chapter.get("title", ""), chapter.get("length_ms", 0)
                )
        return DecryptLicense(
            source_url=content.content_url,
            decryption_key=content.key,
            initialization_vector=content.iv,
            user_agent=self.config.user_agent,
            chapter_table=chapter_table,
        )

    def cancel(self) -> None:
        """
        Requests cancellation of the current run; a no-op when idle or finished.
        Must be called from the event loop thread.
        """
        if self.state in (PipelineState.IDLE, PipelineState.LIBERATED, PipelineState.FAILED):
            return
        self._cancel_requested = True
        if self._license_task is not None and not self._license_task.done():
            self._license_task.cancel()
        self.adapter.cancel(self._handle)
