"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import timedelta

from book_liberator.models.book import AcquisitionItem

UNKNOWN_MARKER = "[unknown]"
UNABRIDGED_SUFFIX = " (Unabridged)"


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_time_remaining(remaining: timedelta) -> str:
    return format_duration(max(remaining.total_seconds(), 0))


def title_sans_unabridged(title: str | None) -> str:
    """Drops the ' (Unabridged)' marker that stores append to titles."""
    if not title:
        return UNKNOWN_MARKER
    if title.endswith(UNABRIDGED_SUFFIX):
        return title[: -len(UNABRIDGED_SUFFIX)].rstrip()
    return title


def or_unknown(value: str | None) -> str:
    return value if value else UNKNOWN_MARKER


def title_for_errors(item: AcquisitionItem) -> str:
    """
    Short, identifiable label for log and error messages.

    Titles over 53 characters are cut to 50 and given an ellipsis, so the label
    never grows longer than the title it replaces.
    """
    title = item.title or ""
    if len(title) > 53:
        title = f"{title[:50]}..."
    return f"{title} [{item.product_id}]"
