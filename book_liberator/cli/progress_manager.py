"""
Manages a Rich Live display for concurrent liberation runs.

The display is an event listener: it subscribes to the pipeline's EventBus and
renders overall progress, the books currently being decrypted with the
metadata discovered for them, and per-book progress bars.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Optional

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from book_liberator.core.events import EventBus, EventType, LiberationEvent
from book_liberator.models.status import DecryptProgress
from book_liberator.utils.formatting import format_size, format_time_remaining

log = logging.getLogger("book_liberator")

MAX_BOOK_CARDS = 4


class ProgressManager:
    """Live view of a liberation session, fed by pipeline events."""

    def __init__(self, console: Console, total_books: int = 0):
        self.console = console

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=20),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TextColumn("{task.fields[size]}"),
            "•",
            TextColumn("[cyan]{task.fields[eta]}"),
            console=console,
            transient=False,
        )
        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=console,
        )

        self._live: Optional[Live] = None
        self._layout: Optional[Layout] = None
        self._lock = threading.RLock()
        self._events: Optional[EventBus] = None

        self._stats = {
            "total_books": total_books,
            "finished": 0,
            "active": 0,
            "peak_concurrent": 0,
            "start_time": None,
        }
        self._books: dict[str, dict[str, Any]] = {}
        self._tasks: dict[str, TaskID] = {}
        self._overall_task_id: Optional[TaskID] = None

    def attach(self, events: EventBus) -> "ProgressManager":
        """Starts listening to `events`."""
        self._events = events
        events.subscribe(self.handle_event)
        return self

    def detach(self) -> None:
        if self._events is not None:
            self._events.unsubscribe(self.handle_event)
            self._events = None

    def handle_event(self, event: LiberationEvent) -> None:
        """Entry point for every event; may be called from worker threads."""
        pid = event.item.product_id
        with self._lock:
            if event.type == EventType.DECRYPT_BEGIN:
                self._begin_book(pid, event.item.title)
            elif event.type == EventType.DECRYPT_PROGRESS:
                self._update_book_progress(pid, event.payload)
            elif event.type == EventType.TIME_REMAINING:
                self._update_task(pid, eta=format_time_remaining(event.payload))
            elif event.type == EventType.TITLE_DISCOVERED:
                self._set_book_field(pid, "title", event.payload)
            elif event.type == EventType.AUTHORS_DISCOVERED:
                self._set_book_field(pid, "author", event.payload)
            elif event.type == EventType.NARRATORS_DISCOVERED:
                self._set_book_field(pid, "narrator", event.payload)
            elif event.type == EventType.COVER_ART_DISCOVERED:
                self._set_book_field(pid, "cover", True)
            elif event.type == EventType.DECRYPT_COMPLETED:
                self._end_book(pid)
            elif event.type == EventType.STATUS_UPDATE:
                self.log_message(f"[dim]{escape(str(event.payload))}[/dim]")
            elif event.type == EventType.RUN_COMPLETED:
                self._stats["finished"] += 1
                if self._overall_task_id is not None:
                    self.overall_progress.update(
                        self._overall_task_id, completed=self._stats["finished"]
                    )
            self._update_display()

    def log_message(self, message: str, level: str = "info"):
        getattr(log, level, log.info)(message)

    def _begin_book(self, pid: str, title: str) -> None:
        self._books[pid] = {"title": title, "author": None, "narrator": None, "cover": False}
        if len(self._books) > MAX_BOOK_CARDS:
            self._books.pop(next(iter(self._books)))

        description = title if len(title) <= 40 else title[:38] + "…"
        self._tasks[pid] = self.progress.add_task(
            escape(description), total=100, size="", eta="--:--"
        )
        self._stats["active"] = len(self._tasks)
        self._stats["peak_concurrent"] = max(self._stats["peak_concurrent"], self._stats["active"])

    def _update_book_progress(self, pid: str, progress: DecryptProgress) -> None:
        fields: dict[str, Any] = {"size": format_size(progress.processed_bytes)}
        if progress.fraction is not None:
            fields["completed"] = progress.fraction * 100
        self._update_task(pid, **fields)

    def _update_task(self, pid: str, **fields) -> None:
        task_id = self._tasks.get(pid)
        if task_id is not None:
            self.progress.update(task_id, **fields)

    def _set_book_field(self, pid: str, key: str, value: Any) -> None:
        if pid in self._books:
            self._books[pid][key] = value

    def _end_book(self, pid: str) -> None:
        task_id = self._tasks.pop(pid, None)
        if task_id is not None:
            self.progress.remove_task(task_id)
        self._books.pop(pid, None)
        self._stats["active"] = len(self._tasks)

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="stats", size=6),
            Layout(name="books", size=7),
            Layout(name="progress", ratio=1),
        )
        return layout

    def _generate_header(self) -> Panel:
        elapsed_str = "0s"
        if self._stats["start_time"]:
            elapsed = datetime.now() - self._stats["start_time"]
            elapsed_str = format_time_remaining(timedelta(seconds=int(elapsed.total_seconds())))
        header_text = Text()
        header_text.append("📚 Book Liberator ", style="bold cyan")
        header_text.append("│ ", style="dim")
        header_text.append(f"Session: {elapsed_str}", style="yellow")
        return Panel(header_text, border_style="cyan")

    def _generate_stats_panel(self) -> Panel:
        stats_table = Table.grid(padding=(0, 2))
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        remaining = max(self._stats["total_books"] - self._stats["finished"], 0)
        stats_table.add_row(
            "Finished:",
            f"[green]{self._stats['finished']}[/green]",
            "Remaining:",
            f"[cyan]{remaining}[/cyan]",
        )
        stats_table.add_row(
            "Active:",
            f"[cyan]{self._stats['active']}[/cyan]",
            "Peak:",
            f"[magenta]{self._stats['peak_concurrent']}[/magenta]",
        )
        combined = Table.grid()
        combined.add_row(stats_table)
        if self._overall_task_id is not None:
            combined.add_row(self.overall_progress)
        return Panel(combined, title="[bold]📊 Session Statistics[/bold]", border_style="blue")

    def _generate_books_panel(self) -> Panel:
        if not self._books:
            return Panel(
                Text("No books currently decrypting...", style="dim italic", justify="center"),
                title="[bold]📖 Now Liberating[/bold]",
                border_style="green",
            )
        grid = Table.grid(padding=(0, 2))
        cards = []
        for book in self._books.values():
            grid.add_column(vertical="top", min_width=20)
            card = Table.grid()
            card.add_column(width=28)
            title = book["title"]
            card.add_row(f"[yellow]{escape(title[:26] + '…' if len(title) > 28 else title)}[/yellow]")
            card.add_row(f"[cyan]{escape(book['author'] or '…')}[/cyan]")
            card.add_row(f"[dim]read by {escape(book['narrator'] or '…')}[/dim]")
            card.add_row("[green]🖼 cover[/green]" if book["cover"] else "[dim]no cover yet[/dim]")
            cards.append(card)
        grid.add_row(*cards)
        return Panel(grid, title="[bold]📖 Now Liberating[/bold]", border_style="green")

    def _generate_progress_panel(self) -> Panel:
        if not self._tasks:
            return Panel(
                Text("Waiting for decrypts to start...", style="dim italic", justify="center"),
                title="[bold]🔓 Active Decrypts[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]🔓 Active Decrypts ({len(self._tasks)})[/bold]",
            border_style="green",
        )

    def _update_display(self):
        """Updates all panels in the layout, letting the Live object handle refresh rate."""
        if not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["stats"].update(self._generate_stats_panel())
        self._layout["books"].update(self._generate_books_panel())
        self._layout["progress"].update(self._generate_progress_panel())

    def get_statistics(self) -> dict:
        with self._lock:
            return self._stats.copy()

    async def __aenter__(self):
        self._stats["start_time"] = datetime.now()
        self._overall_task_id = self.overall_progress.add_task(
            "Overall Progress", total=self._stats["total_books"] or None
        )
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.detach()
        if self._live:
            await asyncio.sleep(0.2)
            with self._lock:
                self._update_display()
            self._live.stop()
