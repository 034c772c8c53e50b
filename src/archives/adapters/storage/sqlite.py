"""Embedded SQLite store mirroring the OpenTelemetry ClickHouse tables.

Timestamps are stored as REAL epoch seconds and attribute maps as JSON text.
The store is read-only from the service's point of view: it creates its
schema on first use, and rows are written by whatever exports telemetry into
the same file.
"""

import logging
import math
import sqlite3
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import aiosqlite

from archives.adapters.storage.sqlite_base import MEMORY_PATH, AsyncConnectionManager
from archives.core.errors import ArchivesError, StoreQueryError
from archives.core.models import Aggregation
from archives.core.ports import Row

logger = logging.getLogger(__name__)

QUANTILE_FUNCTION = "archives_quantile"
CASEFOLD_FUNCTION = "archives_casefold"

ARCHIVES_SCHEMA = """
CREATE TABLE IF NOT EXISTS otel_logs (
    Timestamp REAL NOT NULL,
    ObservedTimestamp REAL NOT NULL,
    TraceId TEXT NOT NULL DEFAULT '',
    SpanId TEXT NOT NULL DEFAULT '',
    SeverityText TEXT NOT NULL DEFAULT '',
    SeverityNumber INTEGER NOT NULL DEFAULT 0,
    ServiceName TEXT NOT NULL DEFAULT '',
    Body TEXT NOT NULL DEFAULT '',
    ResourceAttributes TEXT NOT NULL DEFAULT '{}',
    LogAttributes TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_otel_logs_timestamp ON otel_logs(Timestamp);
CREATE INDEX IF NOT EXISTS idx_otel_logs_service_timestamp
    ON otel_logs(ServiceName, Timestamp);
CREATE TABLE IF NOT EXISTS otel_metrics_gauge (
    MetricName TEXT NOT NULL,
    TimeUnix REAL NOT NULL,
    Value REAL NOT NULL,
    ServiceName TEXT NOT NULL DEFAULT '',
    Attributes TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_otel_metrics_gauge_name_time
    ON otel_metrics_gauge(MetricName, TimeUnix);
CREATE TABLE IF NOT EXISTS otel_metrics_sum (
    MetricName TEXT NOT NULL,
    TimeUnix REAL NOT NULL,
    Value REAL NOT NULL,
    ServiceName TEXT NOT NULL DEFAULT '',
    Attributes TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_otel_metrics_sum_name_time
    ON otel_metrics_sum(MetricName, TimeUnix);
"""

# Byte totals are the summed text lengths plus fixed-width columns, which is
# close enough for reporting.
_STATS_QUERY = """
SELECT 'otel_logs' AS table_name,
       COUNT(*) AS row_count,
       COALESCE(SUM(
           LENGTH(TraceId) + LENGTH(SpanId) + LENGTH(SeverityText)
           + LENGTH(ServiceName) + LENGTH(Body)
           + LENGTH(ResourceAttributes) + LENGTH(LogAttributes) + 24
       ), 0) AS byte_count
FROM otel_logs
UNION ALL
SELECT 'otel_metrics_gauge', COUNT(*),
       COALESCE(SUM(
           LENGTH(MetricName) + LENGTH(ServiceName) + LENGTH(Attributes) + 16
       ), 0)
FROM otel_metrics_gauge
UNION ALL
SELECT 'otel_metrics_sum', COUNT(*),
       COALESCE(SUM(
           LENGTH(MetricName) + LENGTH(ServiceName) + LENGTH(Attributes) + 16
       ), 0)
FROM otel_metrics_sum
"""

_SIMPLE_AGGREGATES = {
    Aggregation.AVG: "avg",
    Aggregation.MIN: "min",
    Aggregation.MAX: "max",
    Aggregation.SUM: "sum",
}


def interpolated_quantile(level: float, joined: str | None) -> float | None:
    """Linearly interpolated quantile over comma-joined numeric text.

    Registered as a SQL function and fed by ``group_concat``, since SQLite
    has no built-in quantile aggregate.

    Args:
        level: Quantile between 0 and 1.
        joined: Values joined with commas, or None for an empty group.

    Returns:
        The quantile value, or None when there are no values.
    """
    if not joined:
        return None
    values = sorted(float(v) for v in joined.split(","))
    position = level * (len(values) - 1)
    lower = math.floor(position)
    upper = math.ceil(position)
    return values[lower] + (values[upper] - values[lower]) * (position - lower)


def casefold_text(value: Any) -> str | None:
    """Unicode case folding for SQL, since SQLite's lower() only folds ASCII."""
    if value is None:
        return None
    return str(value).casefold()


async def register_functions(db: aiosqlite.Connection) -> None:
    await db.create_function(
        QUANTILE_FUNCTION, 2, interpolated_quantile, deterministic=True
    )
    await db.create_function(CASEFOLD_FUNCTION, 1, casefold_text, deterministic=True)


class SQLiteDialect:
    """SQL fragments for SQLite."""

    def uuid_expr(self) -> str:
        return "lower(hex(randomblob(16)))"

    def ilike(self, column: str) -> str:
        return f"{CASEFOLD_FUNCTION}({column}) LIKE {CASEFOLD_FUNCTION}(?)"

    def time_bucket(self, column: str, interval_seconds: int) -> str:
        return f"CAST({column} / {interval_seconds} AS INTEGER) * {interval_seconds}"

    def aggregate(self, aggregation: Aggregation, column: str) -> str:
        if aggregation is Aggregation.COUNT:
            return "COUNT(*)"
        quantile = aggregation.quantile
        if quantile is not None:
            return f"{QUANTILE_FUNCTION}({quantile}, group_concat({column}))"
        return f"{_SIMPLE_AGGREGATES[aggregation]}({column})"

    def bind_time(self, value: datetime) -> float:
        return value.timestamp()

    def stats_query(self) -> tuple[str, list[Any]]:
        return _STATS_QUERY, []


class SQLiteExecutor:
    """QueryExecutorPort backed by a local SQLite file via aiosqlite.

    Example:
        >>> executor = SQLiteExecutor("archives.db")
        >>> translator = QueryTranslator(executor)
    """

    def __init__(self, db_path: str = MEMORY_PATH) -> None:
        self.dialect = SQLiteDialect()
        self._manager = AsyncConnectionManager(
            db_path, ARCHIVES_SCHEMA, on_connect=register_functions
        )

    @property
    def db_path(self) -> str:
        return self._manager.db_path

    @asynccontextmanager
    async def async_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Raw connection to the store, for loading data."""
        async with self._manager.connection() as db:
            yield db

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        try:
            async with self._manager.connection() as db:
                async with db.execute(sql, tuple(params)) as cursor:
                    columns = [col[0] for col in cursor.description or ()]
                    fetched = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreQueryError(str(e)) from e
        return [dict(zip(columns, row, strict=True)) for row in fetched]

    async def ping(self) -> bool:
        try:
            rows = await self.query("SELECT 1 AS ok")
        except ArchivesError as e:
            logger.warning("SQLite ping failed: %s", e)
            return False
        return bool(rows) and rows[0].get("ok") == 1

    async def close(self) -> None:
        await self._manager.close()
