"""JSON-ready wire shapes for log entries and metric data points."""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from archives.core.models import LogEntry, MetricDataPoint


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as RFC 3339 text."""
    return value.isoformat()


def encode_log_entry(entry: LogEntry) -> dict[str, Any]:
    """Encode a LogEntry for the HTTP API.

    Optional correlation fields are omitted when absent rather than sent as
    null.
    """
    obj: dict[str, Any] = {
        "id": str(entry.id),
        "timestamp": format_timestamp(entry.timestamp),
        "observed_timestamp": format_timestamp(entry.observed_timestamp),
    }
    if entry.trace_id is not None:
        obj["trace_id"] = entry.trace_id
    if entry.span_id is not None:
        obj["span_id"] = entry.span_id
    obj["severity"] = str(entry.severity)
    obj["severity_text"] = entry.severity_text
    obj["body"] = entry.body
    obj["resource_attributes"] = entry.resource_attributes
    obj["log_attributes"] = entry.log_attributes
    if entry.service_name is not None:
        obj["service_name"] = entry.service_name
    return obj


def encode_logs(entries: Iterable[LogEntry]) -> list[dict[str, Any]]:
    return [encode_log_entry(entry) for entry in entries]


def encode_data_point(point: MetricDataPoint) -> dict[str, Any]:
    return {"timestamp": format_timestamp(point.timestamp), "value": point.value}


def encode_data_points(points: Iterable[MetricDataPoint]) -> list[dict[str, Any]]:
    return [encode_data_point(point) for point in points]


def agent_log_record(entry: LogEntry, include_trace: bool = True) -> dict[str, Any]:
    """Flatten a LogEntry into the record shape returned to calling agents.

    Args:
        entry: The log entry.
        include_trace: Whether to carry ``trace_id`` (null when absent).

    Returns:
        Dict with timestamp, severity, service, message and optionally
        trace_id.
    """
    record: dict[str, Any] = {
        "timestamp": format_timestamp(entry.timestamp),
        "severity": str(entry.severity),
        "service": entry.service_name,
        "message": entry.body,
    }
    if include_trace:
        record["trace_id"] = entry.trace_id
    return record
