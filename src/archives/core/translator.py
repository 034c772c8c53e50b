"""Translation of typed query parameters into store queries.

Query building is kept in pure ``build_*`` functions so the generated SQL can
be inspected without a store. ``QueryTranslator`` runs the built queries
through a ``QueryExecutorPort`` and normalizes the rows.

Optional filters are appended only when present: an omitted filter adds no
predicate at all, so it can never exclude rows.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from archives.core.models import (
    DatabaseStats,
    LogEntry,
    LogSearchParams,
    LogSeverity,
    MetricDataPoint,
    MetricQueryParams,
    TimeRange,
)
from archives.core.normalize import normalize_log_row, normalize_metric_row
from archives.core.ports import QueryExecutorPort, SqlDialect

logger = logging.getLogger(__name__)

LOG_TABLE = "otel_logs"
METRIC_TABLE_PREFIX = "otel_metrics"
GAUGE_TABLE = "otel_metrics_gauge"

_SELECT_LOGS = """
SELECT
    {id_expr} AS id,
    Timestamp AS timestamp,
    ObservedTimestamp AS observed_timestamp,
    TraceId AS trace_id,
    SpanId AS span_id,
    SeverityNumber AS severity_number,
    SeverityText AS severity_text,
    Body AS body,
    ResourceAttributes AS resource_attributes,
    LogAttributes AS log_attributes,
    ServiceName AS service_name
FROM otel_logs
WHERE Timestamp >= ? AND Timestamp < ?"""

_COUNT_LOGS = """
SELECT count(*) AS count
FROM otel_logs
WHERE Timestamp >= ? AND Timestamp < ?"""

_SELECT_METRIC_BUCKETS = """
SELECT
    {bucket_expr} AS bucket,
    {agg_expr} AS value
FROM otel_metrics_gauge
WHERE MetricName = ?
  AND TimeUnix >= ?
  AND TimeUnix < ?
GROUP BY bucket
ORDER BY bucket ASC"""

_SELECT_METRIC_NAMES = """
SELECT DISTINCT MetricName AS name
FROM otel_metrics_gauge
ORDER BY name ASC"""


@dataclass(frozen=True)
class Query:
    """A query template with positional ``?`` bind values."""

    sql: str
    params: list[Any] = field(default_factory=list)


def build_log_search_query(params: LogSearchParams, dialect: SqlDialect) -> Query:
    """Build the filtered, newest-first, bounded log search query.

    Args:
        params: Search parameters.
        dialect: SQL dialect of the target store.

    Returns:
        Query selecting log rows ordered by descending event timestamp.
    """
    sql = _SELECT_LOGS.format(id_expr=dialect.uuid_expr())
    binds: list[Any] = [
        dialect.bind_time(params.time_range.start),
        dialect.bind_time(params.time_range.end),
    ]
    if params.min_severity is not None:
        sql += "\n  AND SeverityNumber >= ?"
        binds.append(params.min_severity.to_numeric())
    if params.text_query is not None:
        sql += f"\n  AND {dialect.ilike('Body')}"
        binds.append(f"%{params.text_query}%")
    if params.service_name is not None:
        sql += "\n  AND ServiceName = ?"
        binds.append(params.service_name)
    page = params.pagination
    sql += "\nORDER BY Timestamp DESC"
    sql += f"\nLIMIT {int(page.limit)} OFFSET {int(page.offset)}"
    return Query(sql=sql, params=binds)


def build_count_query(
    time_range: TimeRange,
    dialect: SqlDialect,
    min_severity: LogSeverity | None = None,
) -> Query:
    """Build a log count over a time window, optionally above a severity floor."""
    sql = _COUNT_LOGS
    binds: list[Any] = [
        dialect.bind_time(time_range.start),
        dialect.bind_time(time_range.end),
    ]
    if min_severity is not None:
        sql += "\n  AND SeverityNumber >= ?"
        binds.append(min_severity.to_numeric())
    return Query(sql=sql, params=binds)


def build_metric_query(params: MetricQueryParams, dialect: SqlDialect) -> Query:
    """Build the bucketed aggregation query for one metric.

    Buckets are epoch-aligned and ``interval_seconds`` wide; results are
    ordered oldest bucket first.
    """
    interval = int(params.interval_seconds)
    sql = _SELECT_METRIC_BUCKETS.format(
        bucket_expr=dialect.time_bucket("TimeUnix", interval),
        agg_expr=dialect.aggregate(params.aggregation, "Value"),
    )
    return Query(
        sql=sql,
        params=[
            params.metric_name,
            dialect.bind_time(params.time_range.start),
            dialect.bind_time(params.time_range.end),
        ],
    )


def build_metric_names_query() -> Query:
    return Query(sql=_SELECT_METRIC_NAMES)


def stats_from_rows(rows: list[dict[str, Any]]) -> DatabaseStats:
    """Fold per-table row/byte totals into DatabaseStats.

    ``otel_logs`` counts as logs; every ``otel_metrics*`` table is summed into
    the metric totals. Other tables are ignored.
    """
    log_count = log_bytes = metric_count = metric_bytes = 0
    for row in rows:
        table = str(row.get("table_name", ""))
        rows_total = int(row.get("row_count") or 0)
        bytes_total = int(row.get("byte_count") or 0)
        if table == LOG_TABLE:
            log_count, log_bytes = rows_total, bytes_total
        elif table.startswith(METRIC_TABLE_PREFIX):
            metric_count += rows_total
            metric_bytes += bytes_total
    return DatabaseStats(
        log_count=log_count,
        log_bytes=log_bytes,
        metric_count=metric_count,
        metric_bytes=metric_bytes,
    )


class QueryTranslator:
    """Runs log and metric queries against a store and normalizes results.

    The translator holds no per-request state; one instance is shared by all
    requests. Store errors propagate unchanged, with no retry.
    """

    def __init__(self, executor: QueryExecutorPort) -> None:
        self._executor = executor

    async def search_logs(self, params: LogSearchParams) -> list[LogEntry]:
        """Search logs, most recent first."""
        query = build_log_search_query(params, self._executor.dialect)
        rows = await self._executor.query(query.sql, query.params)
        entries = [normalize_log_row(row) for row in rows]
        logger.debug("Found %d log entries", len(entries))
        return entries

    async def count_logs(
        self, time_range: TimeRange, min_severity: LogSeverity | None = None
    ) -> int:
        """Count logs in ``time_range``, optionally at or above ``min_severity``."""
        query = build_count_query(time_range, self._executor.dialect, min_severity)
        rows = await self._executor.query(query.sql, query.params)
        if not rows:
            return 0
        return int(rows[0].get("count") or 0)

    async def query_metrics(self, params: MetricQueryParams) -> list[MetricDataPoint]:
        """Aggregate one metric into time buckets, oldest first."""
        query = build_metric_query(params, self._executor.dialect)
        rows = await self._executor.query(query.sql, query.params)
        points = [normalize_metric_row(row) for row in rows]
        logger.debug(
            "Metric %s: %d buckets (%s, %ds)",
            params.metric_name,
            len(points),
            params.aggregation,
            params.interval_seconds,
        )
        return points

    async def list_metric_names(self) -> list[str]:
        """Return distinct metric names in lexicographic order."""
        query = build_metric_names_query()
        rows = await self._executor.query(query.sql, query.params)
        return [str(row["name"]) for row in rows]

    async def get_stats(self) -> DatabaseStats:
        """Return current row and byte totals. Never cached."""
        sql, params = self._executor.dialect.stats_query()
        rows = await self._executor.query(sql, params)
        return stats_from_rows([dict(row) for row in rows])

    async def health_check(self) -> bool:
        return await self._executor.ping()
