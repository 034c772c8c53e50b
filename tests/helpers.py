"""Test helpers shared by unit and integration tests."""

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from archives.adapters.storage.sqlite import SQLiteDialect, SQLiteExecutor
from archives.core.errors import ArchivesError
from archives.core.ports import Row

# Hour-aligned "now" used wherever tests pin the clock.
NOW_TS = 1_700_002_800.0
NOW = datetime.fromtimestamp(NOW_TS, tz=UTC)


def log_row(
    ts: float,
    body: str = "message",
    severity_number: int = 9,
    service: str = "api",
    **overrides: Any,
) -> dict[str, Any]:
    """Build an otel_logs row with sensible defaults."""
    row: dict[str, Any] = {
        "Timestamp": ts,
        "ObservedTimestamp": ts + 0.5,
        "TraceId": "",
        "SpanId": "",
        "SeverityText": "",
        "SeverityNumber": severity_number,
        "ServiceName": service,
        "Body": body,
        "ResourceAttributes": json.dumps({"service.name": service}),
        "LogAttributes": "{}",
    }
    row.update(overrides)
    return row


async def insert_logs(executor: SQLiteExecutor, rows: Sequence[dict[str, Any]]) -> None:
    async with executor.async_connection() as db:
        for row in rows:
            columns = ", ".join(row)
            marks = ", ".join("?" for _ in row)
            await db.execute(
                f"INSERT INTO otel_logs ({columns}) VALUES ({marks})",
                tuple(row.values()),
            )
        await db.commit()


async def insert_gauge(
    executor: SQLiteExecutor,
    name: str,
    samples: Sequence[tuple[float, float]],
    table: str = "otel_metrics_gauge",
) -> None:
    async with executor.async_connection() as db:
        await db.executemany(
            f"INSERT INTO {table} (MetricName, TimeUnix, Value) VALUES (?, ?, ?)",
            [(name, ts, value) for ts, value in samples],
        )
        await db.commit()


class FakeExecutor:
    """Scripted QueryExecutorPort that records every query it receives.

    ``responses`` is consumed in order; each item is either a list of rows
    or an ArchivesError to raise. When exhausted, queries return no rows.
    """

    def __init__(
        self,
        responses: Sequence[list[Row] | ArchivesError] = (),
        healthy: bool = True,
    ) -> None:
        self.dialect = SQLiteDialect()
        self.responses = list(responses)
        self.healthy = healthy
        self.calls: list[tuple[str, list[Any]]] = []
        self.closed = False

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        self.calls.append((sql, list(params)))
        if not self.responses:
            return []
        response = self.responses.pop(0)
        if isinstance(response, ArchivesError):
            raise response
        return response

    async def ping(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed = True
