"""
The session coordinator: runs a queue of books through liberation pipelines
with bounded parallelism.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Iterable, Optional

from book_liberator.media.decrypt import DecryptEngine
from book_liberator.models.book import AcquisitionItem
from book_liberator.models.config import LiberatorConfig
from book_liberator.models.stats import AcquisitionStats
from book_liberator.models.status import StatusResult
from book_liberator.storage.catalog import LibraryCatalog
from book_liberator.storage.layout import StorageLayout

from .events import EventBus
from .pipeline import DECRYPT_CANCELLED, LiberationPipeline, LicenseClientProvider

log = logging.getLogger(__name__)

SESSION_HISTORY_FILE = "session_history.jsonl"


class LiberationManager:
    """Orchestrates a liberation session over many books."""

    def __init__(
        self,
        config: LiberatorConfig,
        catalog: LibraryCatalog,
        layout: StorageLayout,
        engine: DecryptEngine,
        license_clients: LicenseClientProvider,
        events: Optional[EventBus] = None,
    ):
        self.config = config
        self.catalog = catalog
        self.layout = layout
        self.engine = engine
        self.license_clients = license_clients
        self.events = events or EventBus()
        self.stats = AcquisitionStats()
        self.semaphore = asyncio.Semaphore(config.max_workers)
        self._running: dict[str, LiberationPipeline] = {}
        self._cancelled = False

    def _new_pipeline(self) -> LiberationPipeline:
        return LiberationPipeline(
            self.config,
            self.catalog,
            self.layout,
            self.engine,
            self.license_clients,
            events=self.events,
        )

    async def liberate(
        self, items: Iterable[AcquisitionItem]
    ) -> list[tuple[AcquisitionItem, StatusResult]]:
        """
        Liberates every item and returns one result per unique product id, in
        input order. A failing book never stops the others.
        """
        unique = list({item.product_id: item for item in items}.values())
        if not unique:
            log.info("No books to liberate. Nothing to do.")
            return []

        self.layout.ensure_directories(
            self.config.downloads_in_progress_dir, self.config.decrypt_in_progress_dir
        )
        log.info(f"Liberating {len(unique)} book(s) with {self.config.max_workers} worker(s).")
        results = await asyncio.gather(*(self._liberate_one(item) for item in unique))
        return list(zip(unique, results))

    async def _liberate_one(self, item: AcquisitionItem) -> StatusResult:
        async with self.semaphore:
            if self._cancelled:
                result = StatusResult.failure(DECRYPT_CANCELLED)
            else:
                pipeline = self._new_pipeline()
                self._running[item.product_id] = pipeline
                try:
                    result = await pipeline.process(item)
                finally:
                    self._running.pop(item.product_id, None)

        size = 0
        if result.is_success and not result.is_skipped:
            audio = self.layout.find_audio(item.product_id)
            size = audio.stat().st_size if audio else 0
        await self.stats.record(item.product_id, result, size)
        return result

    def cancel_all(self) -> None:
        """Cancels running pipelines and every book still waiting for a worker."""
        self._cancelled = True
        for pipeline in list(self._running.values()):
            pipeline.cancel()

    def save_session_stats(self) -> None:
        """Appends the current session's stats to the history file."""
        stats_file = Path(self.config.config_path) / SESSION_HISTORY_FILE
        try:
            with open(stats_file, "a", encoding="utf-8") as f:
                session_data = {
                    "timestamp": int(time.time()),
                    "books_liberated": self.stats.books_liberated,
                    "books_skipped_exists": self.stats.books_skipped_exists,
                    "books_failed": self.stats.books_failed,
                    "total_size_liberated": self.stats.total_size_liberated,
                    "duration_seconds": round(self.stats.elapsed_seconds, 2),
                    "failed_product_ids": sorted(self.stats.failures),
                }
                json.dump(session_data, f)
                f.write("\n")
        except OSError as e:
            log.warning(f"[yellow]Could not save session stats:[/] {e}")
