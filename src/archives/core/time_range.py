"""Helpers for building time windows and pagination defaults."""

import time
from datetime import UTC, datetime, timedelta

from archives.core.models import DEFAULT_LIMIT, Pagination, TimeRange


def _now() -> datetime:
    return datetime.fromtimestamp(time.time(), tz=UTC)


def last_minutes(minutes: int) -> TimeRange:
    """Create a time range covering the last N minutes.

    Args:
        minutes: Window length in minutes.

    Returns:
        TimeRange ending now.
    """
    end = _now()
    return TimeRange(start=end - timedelta(minutes=minutes), end=end)


def last_hours(hours: int) -> TimeRange:
    """Create a time range covering the last N hours.

    Args:
        hours: Window length in hours.

    Returns:
        TimeRange ending now.
    """
    end = _now()
    return TimeRange(start=end - timedelta(hours=hours), end=end)


def paginate(offset: int | None = None, limit: int | None = None) -> Pagination:
    """Build a Pagination, filling omitted values with the defaults (0, 100)."""
    return Pagination(
        offset=0 if offset is None else offset,
        limit=DEFAULT_LIMIT if limit is None else limit,
    )
