"""Mapping of raw store rows into LogEntry and MetricDataPoint.

Every field that may be malformed in the store goes through a parser that
returns ``None`` instead of raising, and ``or_default`` supplies the
fallback. A bad timestamp or attribute blob therefore degrades one field,
never the whole row.
"""

import json
import re
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

from archives.core.models import LogEntry, LogSeverity, MetricDataPoint
from archives.core.ports import Row

T = TypeVar("T")

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# Python datetimes hold microseconds; ClickHouse DateTime64(9) prints nanoseconds.
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def or_default(value: T | None, default: T) -> T:
    """Return ``value`` unless it is None, in which case return ``default``."""
    return default if value is None else value


def optional_text(raw: Any) -> str | None:
    """Collapse None and empty strings to None."""
    if raw is None or raw == "":
        return None
    return str(raw)


def parse_int(raw: Any) -> int | None:
    try:
        return int(raw)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_uuid(raw: Any) -> uuid.UUID | None:
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def parse_attributes(raw: Any) -> dict[str, Any] | None:
    """Parse an attribute blob.

    Args:
        raw: A mapping (returned as a dict) or JSON object text.

    Returns:
        The attributes as a dict, or None if ``raw`` is absent, not JSON,
        or JSON that is not an object.
    """
    if isinstance(raw, Mapping):
        return dict(raw)
    if not isinstance(raw, (str, bytes)):
        return None
    try:
        result = json.loads(raw)
    except ValueError:
        return None
    return result if isinstance(result, dict) else None


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse a store timestamp into a timezone-aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), epoch seconds as int or
    float, and ISO 8601 / ClickHouse ``YYYY-MM-DD hh:mm:ss.fffffffff`` text.
    Sub-second precision is kept down to the microsecond.

    Returns:
        The parsed datetime, or None if ``raw`` cannot be interpreted.
    """
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        try:
            return datetime.fromtimestamp(raw, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(_EXTRA_FRACTION.sub(r"\1", raw.strip()))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def normalize_log_row(row: Row) -> LogEntry:
    """Convert one ``otel_logs`` result row into a LogEntry."""
    severity_number = or_default(parse_int(row.get("severity_number")), 0)
    return LogEntry(
        id=or_default(parse_uuid(row.get("id")), uuid.uuid4()),
        timestamp=or_default(parse_timestamp(row.get("timestamp")), EPOCH),
        observed_timestamp=or_default(
            parse_timestamp(row.get("observed_timestamp")), EPOCH
        ),
        severity=LogSeverity.from_numeric(severity_number),
        severity_text=str(row.get("severity_text") or ""),
        body=str(row.get("body") or ""),
        resource_attributes=or_default(
            parse_attributes(row.get("resource_attributes")), {}
        ),
        log_attributes=or_default(parse_attributes(row.get("log_attributes")), {}),
        trace_id=optional_text(row.get("trace_id")),
        span_id=optional_text(row.get("span_id")),
        service_name=optional_text(row.get("service_name")),
    )


def normalize_metric_row(row: Row) -> MetricDataPoint:
    """Convert one bucketed metric row into a MetricDataPoint."""
    value = row.get("value")
    return MetricDataPoint(
        timestamp=or_default(parse_timestamp(row.get("bucket")), EPOCH),
        value=float(value) if value is not None else 0.0,
    )
