"""Core domain models for log and metric queries.

The severity scale and table layout follow the OpenTelemetry ClickHouse
exporter schema.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from archives.core.errors import InvalidParameterError

DEFAULT_LIMIT = 100


class LogSeverity(Enum):
    """Six-level log severity mapped onto the OTEL 1-24 numeric scale."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"

    @classmethod
    def from_numeric(cls, number: int) -> "LogSeverity":
        """Map an OTEL severity number onto its band.

        Args:
            number: OTEL severity number. Values outside 1-24 map to INFO.

        Returns:
            The severity band containing ``number``.
        """
        if 1 <= number <= 24:
            return _BANDS[(number - 1) // 4]
        return cls.INFO

    @classmethod
    def parse(cls, text: str) -> "LogSeverity":
        """Look up a severity by display name, case-insensitively.

        Raises:
            InvalidParameterError: If ``text`` names no severity.
        """
        try:
            return cls(text.strip().upper())
        except ValueError:
            raise InvalidParameterError(f"unknown severity '{text}'") from None

    def to_numeric(self) -> int:
        """Return the lowest OTEL severity number of this band."""
        return _BANDS.index(self) * 4 + 1

    def __str__(self) -> str:
        return self.value


_BANDS = (
    LogSeverity.TRACE,
    LogSeverity.DEBUG,
    LogSeverity.INFO,
    LogSeverity.WARN,
    LogSeverity.ERROR,
    LogSeverity.FATAL,
)


class Aggregation(Enum):
    """Closed set of per-bucket aggregation functions."""

    AVG = "avg"
    MIN = "min"
    MAX = "max"
    SUM = "sum"
    COUNT = "count"
    P50 = "p50"
    P90 = "p90"
    P99 = "p99"

    @classmethod
    def parse(cls, text: str) -> "Aggregation":
        try:
            return cls(text.strip().lower())
        except ValueError:
            raise InvalidParameterError(f"unknown aggregation '{text}'") from None

    @property
    def quantile(self) -> float | None:
        """Quantile level for percentile aggregations, None otherwise."""
        return _QUANTILES.get(self)

    def __str__(self) -> str:
        return self.value


_QUANTILES = {Aggregation.P50: 0.5, Aggregation.P90: 0.9, Aggregation.P99: 0.99}


@dataclass(frozen=True)
class TimeRange:
    """Half-open time window.

    Attributes:
        start: Inclusive lower bound.
        end: Exclusive upper bound.
    """

    start: datetime
    end: datetime


@dataclass(frozen=True)
class Pagination:
    """Offset/limit pair.

    Attributes:
        offset: Number of rows to skip, never negative.
        limit: Maximum number of rows to return, always positive.
    """

    offset: int = 0
    limit: int = DEFAULT_LIMIT

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise InvalidParameterError(f"offset must be >= 0, got {self.offset}")
        if self.limit <= 0:
            raise InvalidParameterError(f"limit must be > 0, got {self.limit}")


@dataclass(frozen=True)
class LogEntry:
    """A log record read back from the store.

    Attributes:
        id: Opaque unique identifier.
        timestamp: Event time.
        observed_timestamp: Time the collector received the record.
        severity: Severity band derived from the numeric code.
        severity_text: Original severity string, verbatim.
        body: Log message.
        resource_attributes: Resource attributes (service, host, ...).
        log_attributes: Record-level attributes.
        trace_id: Trace correlation id, None when absent.
        span_id: Span correlation id, None when absent.
        service_name: Emitting service, None when absent.
    """

    id: UUID
    timestamp: datetime
    observed_timestamp: datetime
    severity: LogSeverity
    severity_text: str
    body: str
    resource_attributes: dict[str, Any] = field(default_factory=dict)
    log_attributes: dict[str, Any] = field(default_factory=dict)
    trace_id: str | None = None
    span_id: str | None = None
    service_name: str | None = None


@dataclass(frozen=True)
class MetricDataPoint:
    """One aggregated value of a metric time series.

    Attributes:
        timestamp: Bucket start.
        value: Aggregated value for the bucket.
    """

    timestamp: datetime
    value: float


@dataclass(frozen=True)
class LogSearchParams:
    time_range: TimeRange
    min_severity: LogSeverity | None = None
    text_query: str | None = None
    service_name: str | None = None
    pagination: Pagination = field(default_factory=Pagination)


@dataclass(frozen=True)
class MetricQueryParams:
    """Parameters for a bucketed metric query.

    ``labels`` is accepted for API compatibility; the current translation
    does not filter on it.
    """

    metric_name: str
    time_range: TimeRange
    aggregation: Aggregation = Aggregation.AVG
    interval_seconds: int = 60
    labels: dict[str, str] | None = None

    def __post_init__(self) -> None:
        if not self.metric_name:
            raise InvalidParameterError("metric_name must not be empty")
        if self.interval_seconds <= 0:
            raise InvalidParameterError(
                f"interval_seconds must be > 0, got {self.interval_seconds}"
            )


@dataclass(frozen=True)
class DatabaseStats:
    """Row and byte totals for the log table and the metric tables."""

    log_count: int = 0
    log_bytes: int = 0
    metric_count: int = 0
    metric_bytes: int = 0
