from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from book_liberator.exceptions import CatalogError
from book_liberator.models.book import AcquisitionItem, LiberatedStatus
from book_liberator.storage.catalog import LibraryCatalog


class TestLibraryCatalog:
    def test_creates_database(self, tmp_path: Path):
        catalog = LibraryCatalog(tmp_path / "cfg")
        assert catalog.db_path.is_file()

    def test_add_and_get(self, catalog: LibraryCatalog):
        item = AcquisitionItem("B01", "First", "us", "me")

        async def scenario():
            await catalog.add_item(item)
            return await catalog.get_item("B01"), await catalog.get_item("missing")

        stored, missing = asyncio.run(scenario())

        assert stored == item
        assert missing is None

    def test_pending_items_exclude_liberated(self, catalog: LibraryCatalog):
        async def scenario():
            for pid in ("B01", "B02", "B03"):
                await catalog.add_item(AcquisitionItem(pid, f"Book {pid}", "us", "me"))
            await catalog.update_status("B02", LiberatedStatus.LIBERATED)
            return await catalog.get_items_to_liberate(), await catalog.get_stats()

        pending, stats = asyncio.run(scenario())

        assert [i.product_id for i in pending] == ["B01", "B03"]
        assert stats["total_books"] == 3
        assert stats["by_status"] == {"not_liberated": 2, "liberated": 1, "error": 0}

    def test_readding_keeps_status(self, catalog: LibraryCatalog):
        catalog.add_item_sync(AcquisitionItem("B01", "Old title", "us", "me"))
        catalog.update_status_sync("B01", LiberatedStatus.LIBERATED)

        catalog.add_item_sync(AcquisitionItem("B01", "New title", "uk", "me"))

        stored = catalog.get_item_sync("B01")
        assert stored.title == "New title"
        assert stored.locale == "uk"
        assert stored.status == LiberatedStatus.LIBERATED

    def test_update_unknown_item(self, catalog: LibraryCatalog):
        with pytest.raises(CatalogError):
            catalog.update_status_sync("nope", LiberatedStatus.LIBERATED)
