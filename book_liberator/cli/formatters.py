"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from book_liberator.models.book import AcquisitionItem, LiberatedStatus
from book_liberator.models.config import LiberatorConfig, get_format_info
from book_liberator.models.stats import AcquisitionStats
from book_liberator.models.status import StatusResult
from book_liberator.utils.formatting import format_duration, format_size

SENSITIVE_KEYS = ("access_token", "device_serial", "customer_id")

STATUS_STYLES = {
    LiberatedStatus.LIBERATED: "[green]✓ liberated[/green]",
    LiberatedStatus.NOT_LIBERATED: "[yellow]○ not liberated[/yellow]",
    LiberatedStatus.ERROR: "[red]✗ error[/red]",
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `book-liberator init` to create a configuration file.",
            "• Check the values with `book-liberator --show-config`.",
        ],
        "LicenseError": [
            "• Your access token may have expired. Update `access_token`.",
            "• Make sure the book's locale matches the marketplace it was bought in.",
        ],
        "VoucherDecryptionError": [
            "• `device_type`, `device_serial` and `customer_id` must match the",
            "  device the access token was registered with.",
        ],
        "CatalogError": [
            "• The catalog database may be locked by another running instance.",
            "• Check the permissions of the configuration directory.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• The store API might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
        "TimeoutError": [
            "• A request timed out, which may indicate network throttling.",
            "• Try reducing the number of `--workers`.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key in SENSITIVE_KEYS and value:
            value = "[hidden]"
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_settings_table(config: LiberatorConfig):
    """Displays a summary of the settings a liberation run will use."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    format_info = get_format_info(config.output_format)
    table.add_row(
        "Output Format:",
        f"[{format_info['color']}]{format_info['name']}[/{format_info['color']}]",
    )
    table.add_row("Books Directory:", f"[dim]{config.books_dir}[/dim]")
    table.add_row("Max Workers:", str(config.max_workers))
    table.add_row("Metadata Fixup:", "✓ Enabled" if config.allow_fixup else "✗ Disabled")
    table.add_row(
        "Device Keys:", "✓ Configured" if config.has_device_keys() else "✗ Missing"
    )

    console.print(
        Panel(table, title="[bold green]✓ Settings[/bold green]", border_style="green")
    )


def print_catalog_table(items: list[AcquisitionItem], stats_data: dict[str, Any]):
    """Displays the catalog and its status counts."""
    console = Console()
    console.print(
        f"\n[bold]Books in Catalog:[/] [green]{stats_data['total_books']}[/green]"
    )
    by_status = stats_data.get("by_status", {})
    console.print(
        "  "
        + "  ".join(
            f"{STATUS_STYLES[status]} {by_status.get(status.value, 0)}"
            for status in LiberatedStatus
        )
        + "\n"
    )

    if not items:
        console.print("[dim]No books in the catalog yet. Add one with `add`.[/dim]")
        return

    table = Table(box=box.ROUNDED)
    table.add_column("Product ID", style="dim", no_wrap=True)
    table.add_column("Title", style="cyan")
    table.add_column("Locale", justify="center")
    table.add_column("Account")
    table.add_column("Status")
    for item in items:
        table.add_row(
            item.product_id,
            escape(item.title),
            item.locale or "[red]?[/red]",
            escape(item.account) or "[red]?[/red]",
            STATUS_STYLES.get(item.status, item.status.value),
        )
    console.print(table)


def print_summary_panel(
    stats: AcquisitionStats,
    results: list[tuple[AcquisitionItem, StatusResult]],
    progress_stats: dict | None = None,
):
    """Displays the final summary of a liberation session."""
    console = Console()
    duration_s = stats.elapsed_seconds

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("✓ Liberated:", f"[bold green]{stats.books_liberated}[/bold green]")
    if stats.books_skipped_exists > 0:
        stats_table.add_row(
            "○ Skipped:", f"[yellow]{stats.books_skipped_exists} (exists)[/yellow]"
        )
    if stats.books_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.books_failed}[/bold red]")

    stats_table.add_row("", "")  # Spacer
    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(stats.total_size_liberated)}[/cyan]"
    )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")
    if progress_stats:
        stats_table.add_row(
            "Peak Concurrent:",
            f"[green]{progress_stats.get('peak_concurrent', 0)}[/green]",
        )

    failed = [(item, result) for item, result in results if not result.is_success]
    border_color = "red" if failed else "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title="📚 [bold]Liberation Complete![/bold]",
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )

    if failed:
        table = Table(title="Failures", box=box.SIMPLE_HEAVY)
        table.add_column("Book", style="cyan")
        table.add_column("Reason", style="red")
        for item, result in failed:
            table.add_row(escape(str(item)), escape("\n".join(result.errors)))
        console.print(table)

    console.print()
