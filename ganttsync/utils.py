"""
Utility functions for ganttsync.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, TypeVar

T = TypeVar("T")


def to_instant(value: datetime) -> datetime:
    """
    Normalize a datetime to an aware UTC instant.

    Naive datetimes are treated as UTC so naive and aware values compare
    by instant rather than raising.

    Args:
        value: The datetime to normalize.

    Returns:
        An aware datetime in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def clone_item(item: T) -> T:
    """
    Structurally clone a working item.

    Uses the item's own ``clone()`` so field types (datetimes included)
    survive unchanged; no serialization round trip is involved.
    """
    return item.clone()  # type: ignore[attr-defined]


def clone_items(items: Iterable[T]) -> List[T]:
    """Clone every item, preserving order."""
    return [clone_item(item) for item in items]


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count != 1 else ''}"


def format_last_saved(last_saved: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Format a last-saved timestamp for a status indicator.

    Args:
        last_saved: When the data was last saved, or None.
        now: Reference time (defaults to the current time).

    Returns:
        Text such as "Saved just now" or "Saved 3 minutes ago".

    Examples:
        >>> format_last_saved(None)
        'Not saved yet'
    """
    if last_saved is None:
        return "Not saved yet"

    now = to_instant(now) if now else utcnow()
    seconds_ago = int((now - to_instant(last_saved)).total_seconds())

    if seconds_ago < 10:
        return "Saved just now"
    if seconds_ago < 60:
        return "Saved less than a minute ago"
    if seconds_ago < 3600:
        return f"Saved {_plural(seconds_ago // 60, 'minute')} ago"
    if seconds_ago < 86400:
        return f"Saved {_plural(seconds_ago // 3600, 'hour')} ago"
    return f"Saved {_plural(seconds_ago // 86400, 'day')} ago"


def format_version_age(created_at: datetime, now: Optional[datetime] = None) -> str:
    """
    Format a version's creation time relative to now.

    Args:
        created_at: Version creation time.
        now: Reference time (defaults to the current time).

    Returns:
        "Just now", "N minutes ago" ... "N weeks ago", or a short date
        ("Mar 4", or "Mar 4, 2023" outside the current year).
    """
    now = to_instant(now) if now else utcnow()
    created = to_instant(created_at)
    seconds = int((now - created).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return "Just now"
    if minutes < 60:
        return f"{_plural(minutes, 'minute')} ago"
    if hours < 24:
        return f"{_plural(hours, 'hour')} ago"
    if days < 7:
        return f"{_plural(days, 'day')} ago"
    if days < 30:
        return f"{_plural(days // 7, 'week')} ago"

    label = f"{created.strftime('%b')} {created.day}"
    if created.year != now.year:
        label = f"{label}, {created.year}"
    return label
