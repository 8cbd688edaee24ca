"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from book_liberator import __version__
from book_liberator.api.client import APIClientPool
from book_liberator.api.voucher import DeviceKeys
from book_liberator.core.events import EventBus
from book_liberator.core.liberation_manager import LiberationManager
from book_liberator.media.ffmpeg_engine import FFmpegDecryptEngine
from book_liberator.models.book import AcquisitionItem
from book_liberator.storage.catalog import LibraryCatalog
from book_liberator.storage.config_manager import ConfigManager
from book_liberator.storage.layout import StorageLayout

from .formatters import (
    print_catalog_table,
    print_config,
    print_settings_table,
    print_summary_panel,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("book_liberator")
log.setLevel("INFO")

app = typer.Typer(
    name="book-liberator",
    help=(
        "Decrypt purchased audiobooks into a local, DRM-free library. Use"
        " 'book-liberator <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "book-liberator"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Book Liberator CLI"""
    if version:
        console.print(f"[bold]book-liberator[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    log.setLevel(log_level)
    if verbose >= 1:
        logging.getLogger().setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]book-liberator init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_config(CONFIG_FILE, config.model_dump(include=config.get_ini_keys()))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    access_token: str = typer.Option(
        ..., "--access-token", prompt=True, hide_input=True, help="Bearer access token."
    ),
    device_type: str = typer.Option("", "--device-type", help="Registered device type."),
    device_serial: str = typer.Option(
        "", "--device-serial", help="Registered device serial number."
    ),
    customer_id: str = typer.Option("", "--customer-id", help="Account customer id."),
    books_dir: Path | None = typer.Option(
        None, "--books-dir", help="Where liberated books are stored."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Initialize configuration with account credentials."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "access_token": access_token,
        "device_type": device_type,
        "device_serial": device_serial,
        "customer_id": customer_id,
    }
    if books_dir is not None:
        settings["books_dir"] = books_dir

    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    if not (device_type and device_serial and customer_id):
        console.print(
            "[yellow]⚠ Device keys are incomplete; encrypted license vouchers cannot"
            " be read until they are set.[/yellow]"
        )
    console.print(
        "Add a book with [cyan]book-liberator add <PRODUCT_ID> --title ...[/cyan]"
    )


@app.command()
def add(
    product_id: str = typer.Argument(..., help="Store product id (ASIN) of the book."),
    title: str = typer.Option(..., "--title", "-t", help="Book title."),
    locale: str = typer.Option("", "--locale", "-l", help="Marketplace, e.g. 'us'."),
    account: str = typer.Option("", "--account", "-a", help="Account owning the book."),
):
    """Register a book in the library catalog."""

    async def _add():
        catalog = LibraryCatalog(CONFIG_DIR)
        item = AcquisitionItem(product_id.strip(), title.strip(), locale.strip(), account.strip())
        await catalog.add_item(item)
        console.print(f"[green]✓ Added {item}[/green]")

    asyncio.run(_add())


@app.command()
def status():
    """Show the library catalog and its liberation status."""

    async def _status():
        catalog = LibraryCatalog(CONFIG_DIR)
        items = await catalog.get_items()
        print_catalog_table(items, await catalog.get_stats())

    asyncio.run(_status())


async def _select_items(
    catalog: LibraryCatalog, product_ids: list[str] | None
) -> list[AcquisitionItem]:
    if not product_ids:
        return await catalog.get_items_to_liberate()

    items = []
    for product_id in dict.fromkeys(product_ids):
        item = await catalog.get_item(product_id)
        if item is None:
            log.warning(f"[yellow]⚠ {product_id} is not in the catalog. Skipping.[/yellow]")
        else:
            items.append(item)
    return items


@app.command()
def liberate(
    product_ids: list[str] | None = typer.Argument(  # noqa: B008
        None, help="Product ids to liberate. Defaults to every pending catalog book."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous decrypts."
    ),
    lossy: bool | None = typer.Option(
        None, "--lossy/--lossless", help="Transcode to MP3 instead of keeping M4B."
    ),
    fixup: bool | None = typer.Option(
        None,
        "--fixup/--no-fixup",
        help="Apply chapter data and request missing cover art.",
    ),
):
    """Decrypt books and move them into the library."""
    cli_options = {
        "max_workers": workers,
        "decrypt_to_lossy": lossy,
        "allow_fixup": fixup,
    }

    async def _liberate_async():
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
        catalog = LibraryCatalog(CONFIG_DIR)
        items = await _select_items(catalog, product_ids)
        if not items:
            console.print("[green]✓ Nothing to liberate.[/green]")
            return

        print_settings_table(config)
        device_keys = None
        if config.has_device_keys():
            device_keys = DeviceKeys(config.device_type, config.device_serial, config.customer_id)
        clients = APIClientPool(config.access_token, device_keys, config.user_agent)
        events = EventBus()
        manager = LiberationManager(
            config,
            catalog,
            StorageLayout(config.books_dir),
            FFmpegDecryptEngine(config.ffmpeg_path),
            clients.get,
            events,
        )

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, manager.cancel_all)
        except (NotImplementedError, RuntimeError):
            log.debug("Signal handlers are not supported here; Ctrl+C aborts immediately.")

        results = []
        progress_stats = None
        try:
            async with ProgressManager(console, total_books=len(items)) as progress_manager:
                progress_manager.attach(events)
                results = await manager.liberate(items)
                progress_stats = progress_manager.get_statistics()
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass
            await clients.close()

        print_summary_panel(manager.stats, results, progress_stats)
        manager.save_session_stats()
        if manager.stats.books_failed:
            raise typer.Exit(code=1)

    asyncio.run(_liberate_async())
