"""
Manages the SQLite catalog of library items and their liberation status.
"""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from book_liberator.exceptions import CatalogError
from book_liberator.models.book import AcquisitionItem, LiberatedStatus

log = logging.getLogger(__name__)

CATALOG_FILENAME = "library.sqlite"


class LibraryCatalog:
    """
    A thread-safe SQLite catalog of books.

    The liberation status stored here is the source of truth for what still needs
    to be processed; only the pipeline writes LIBERATED, and only after the audio
    file is in the library.
    """

    def __init__(self, config_dir_path: Path, pool_size: int = 5):
        self.db_path = Path(config_dir_path) / CATALOG_FILENAME
        self._connection_semaphore = asyncio.Semaphore(pool_size)
        self._initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with WAL journaling."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            return conn
        except (OSError, sqlite3.Error) as e:
            raise CatalogError(f"Failed to open catalog database '{self.db_path}': {e}") from e

    def _initialize_db(self) -> None:
        """Creates the books table and its status index if they don't exist."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS books (
                        product_id TEXT PRIMARY KEY NOT NULL,
                        title TEXT NOT NULL,
                        locale TEXT,
                        account TEXT,
                        status TEXT NOT NULL DEFAULT 'not_liberated',
                        added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        liberated_at TIMESTAMP
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_status ON books(status);")
                conn.commit()
        except sqlite3.Error as e:
            raise CatalogError(
                f"Failed to initialize catalog database at '{self.db_path}': {e}"
            ) from e

    async def _run_in_executor(self, func, *args):
        """Runs a synchronous database function within the connection semaphore."""
        async with self._connection_semaphore:
            return await asyncio.to_thread(func, *args)

    @staticmethod
    def _row_to_item(row: tuple) -> AcquisitionItem:
        product_id, title, locale, account, status = row
        try:
            status = LiberatedStatus(status)
        except ValueError:
            status = LiberatedStatus.NOT_LIBERATED
        return AcquisitionItem(product_id, title, locale or "", account or "", status)

    def add_item_sync(self, item: AcquisitionItem) -> None:
        """Inserts or updates an item. An existing status is preserved."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO books (product_id, title, locale, account, status)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(product_id) DO UPDATE SET
                        title = excluded.title,
                        locale = excluded.locale,
                        account = excluded.account
                    """,
                    (item.product_id, item.title, item.locale, item.account, item.status.value),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise CatalogError(f"Failed to add {item.product_id} to the catalog: {e}") from e

    async def add_item(self, item: AcquisitionItem) -> None:
        await self._run_in_executor(self.add_item_sync, item)

    def get_item_sync(self, product_id: str) -> Optional[AcquisitionItem]:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT product_id, title, locale, account, status FROM books "
                    "WHERE product_id = ?",
                    (product_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise CatalogError(f"Failed to read {product_id} from the catalog: {e}") from e
        return self._row_to_item(row) if row else None

    async def get_item(self, product_id: str) -> Optional[AcquisitionItem]:
        return await self._run_in_executor(self.get_item_sync, product_id)

    def _list_sync(self, only_pending: bool) -> list[AcquisitionItem]:
        query = "SELECT product_id, title, locale, account, status FROM books"
        params: tuple = ()
        if only_pending:
            query += " WHERE status != ?"
            params = (LiberatedStatus.LIBERATED.value,)
        query += " ORDER BY added_at, product_id"
        try:
            with self._get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise CatalogError(f"Failed to list catalog items: {e}") from e
        return [self._row_to_item(row) for row in rows]

    async def get_items(self) -> list[AcquisitionItem]:
        return await self._run_in_executor(self._list_sync, False)

    async def get_items_to_liberate(self) -> list[AcquisitionItem]:
        """Every item whose status is not LIBERATED, in insertion order."""
        return await self._run_in_executor(self._list_sync, True)

    def update_status_sync(self, product_id: str, status: LiberatedStatus) -> None:
        liberated_at = "CURRENT_TIMESTAMP" if status == LiberatedStatus.LIBERATED else "NULL"
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE books SET status = ?, liberated_at = {liberated_at} "  # noqa: S608
                    "WHERE product_id = ?",
                    (status.value, product_id),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise CatalogError(f"Failed to update status of {product_id}: {e}") from e
        if cursor.rowcount == 0:
            raise CatalogError(f"{product_id} is not in the catalog.")

    async def update_status(self, product_id: str, status: LiberatedStatus) -> None:
        await self._run_in_executor(self.update_status_sync, product_id, status)

    def _get_stats_sync(self) -> dict[str, Any]:
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT status, COUNT(*) FROM books GROUP BY status"
                ).fetchall()
        except sqlite3.Error as e:
            raise CatalogError(f"Failed to get catalog stats: {e}") from e
        counts = {status.value: 0 for status in LiberatedStatus}
        counts.update(dict(rows))
        return {"total_books": sum(counts.values()), "by_status": counts}

    async def get_stats(self) -> dict[str, Any]:
        """Book counts, in total and per status."""
        return await self._run_in_executor(self._get_stats_sync)
