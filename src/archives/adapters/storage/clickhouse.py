"""ClickHouse store reached over its HTTP interface.

Queries are sent as the POST body with typed server-side parameters
(``{p0:String}`` markers bound through ``param_p0`` query arguments), so no
value is ever interpolated into SQL text. Results are read as JSONEachRow.
"""

import json
import logging
import re
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx

from archives.core.errors import (
    SerializationError,
    StoreConnectionError,
    StoreQueryError,
)
from archives.core.models import Aggregation
from archives.core.ports import Row

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:8123"
DEFAULT_DATABASE = "otel"
DEFAULT_USERNAME = "default"
DEFAULT_TIMEOUT_SECS = 30.0

_DATETIME_TYPE = "DateTime64(6, 'UTC')"

# Bind markers outside single-quoted literals.
_BIND_MARKER = re.compile(r"'(?:[^'\\]|\\.)*'|\?")

# Parameter values are read with the server's escaped text rules.
_TEXT_ESCAPES = str.maketrans({"\\": "\\\\", "\t": "\\t", "\n": "\\n", "\r": "\\r"})

_SIMPLE_AGGREGATES = {
    Aggregation.AVG: "avg",
    Aggregation.MIN: "min",
    Aggregation.MAX: "max",
    Aggregation.SUM: "sum",
}

_STATS_QUERY = """
SELECT
    table AS table_name,
    sum(rows) AS row_count,
    sum(bytes_on_disk) AS byte_count
FROM system.parts
WHERE database = ? AND active = 1
GROUP BY table"""


class ClickHouseDialect:
    """SQL fragments for ClickHouse.

    Args:
        database: Database whose parts are reported by ``stats_query``.
    """

    def __init__(self, database: str = DEFAULT_DATABASE) -> None:
        self.database = database

    def uuid_expr(self) -> str:
        return "generateUUIDv4()"

    def ilike(self, column: str) -> str:
        return f"{column} ILIKE ?"

    def time_bucket(self, column: str, interval_seconds: int) -> str:
        return f"toStartOfInterval({column}, INTERVAL {interval_seconds} SECOND)"

    def aggregate(self, aggregation: Aggregation, column: str) -> str:
        if aggregation is Aggregation.COUNT:
            return "count()"
        quantile = aggregation.quantile
        if quantile is not None:
            return f"quantile({quantile})({column})"
        return f"{_SIMPLE_AGGREGATES[aggregation]}({column})"

    def bind_time(self, value: datetime) -> datetime:
        return value

    def stats_query(self) -> tuple[str, list[Any]]:
        return _STATS_QUERY, [self.database]


def _param_type(value: Any) -> str:
    if isinstance(value, datetime):
        return _DATETIME_TYPE
    if isinstance(value, bool):
        return "Bool"
    if isinstance(value, int):
        return "Int64"
    if isinstance(value, float):
        return "Float64"
    return "String"


def _param_text(value: Any) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.strftime("%Y-%m-%d %H:%M:%S.%f")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value.translate(_TEXT_ESCAPES)
    return str(value)


def bind_parameters(sql: str, params: Sequence[Any]) -> tuple[str, dict[str, str]]:
    """Rewrite positional ``?`` markers into typed ClickHouse parameters.

    Args:
        sql: Query text with ``?`` markers.
        params: One value per marker, in order.

    Returns:
        The rewritten query and the ``param_*`` query arguments.

    Raises:
        StoreQueryError: If the marker and value counts differ.
    """
    values = list(params)
    bound: dict[str, str] = {}
    position = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal position
        if match.group(0) != "?":
            return match.group(0)
        if position >= len(values):
            raise StoreQueryError(f"more markers than {len(values)} values")
        value = values[position]
        name = f"p{position}"
        bound[f"param_{name}"] = _param_text(value)
        position += 1
        return f"{{{name}:{_param_type(value)}}}"

    rewritten = _BIND_MARKER.sub(_replace, sql)
    if position != len(values):
        raise StoreQueryError(f"{position} markers for {len(values)} values")
    return rewritten, bound


def parse_json_each_row(text: str) -> list[Row]:
    """Parse a JSONEachRow body into one dict per line.

    Raises:
        SerializationError: If a line is not a JSON object.
    """
    rows: list[Row] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            row = json.loads(line)
        except ValueError as e:
            raise SerializationError(f"bad JSONEachRow line: {e}") from e
        if not isinstance(row, dict):
            raise SerializationError("JSONEachRow line is not an object")
        rows.append(row)
    return rows


class ClickHouseExecutor:
    """QueryExecutorPort for a ClickHouse server.

    Args:
        url: Base URL of the ClickHouse HTTP interface.
        database: Default database for unqualified table names.
        username: ClickHouse user.
        password: Password for ``username``; may be empty.
        timeout_secs: Per-request timeout.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.

    Example:
        >>> executor = ClickHouseExecutor("http://clickhouse:8123", "otel")
        >>> translator = QueryTranslator(executor)
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        database: str = DEFAULT_DATABASE,
        username: str = DEFAULT_USERNAME,
        password: str = "",
        timeout_secs: float = DEFAULT_TIMEOUT_SECS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.dialect = ClickHouseDialect(database)
        self._database = database
        headers = {"X-ClickHouse-User": username}
        if password:
            headers["X-ClickHouse-Key"] = password
        self._client = httpx.AsyncClient(
            base_url=url,
            headers=headers,
            timeout=timeout_secs,
            transport=transport,
        )

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        rewritten, bound = bind_parameters(sql, params)
        query_args = {
            "database": self._database,
            "default_format": "JSONEachRow",
            "output_format_json_quote_64bit_integers": "0",
            **bound,
        }
        try:
            response = await self._client.post(
                "/", params=query_args, content=rewritten.encode()
            )
        except httpx.TransportError as e:
            raise StoreConnectionError(f"{self._client.base_url}: {e}") from e
        if response.status_code >= 400:
            raise StoreQueryError(
                f"HTTP {response.status_code}: {response.text.strip()[:500]}"
            )
        return parse_json_each_row(response.text)

    async def ping(self) -> bool:
        try:
            response = await self._client.get("/ping")
        except httpx.TransportError as e:
            logger.warning("ClickHouse ping failed: %s", e)
            return False
        return response.status_code == 200

    async def close(self) -> None:
        await self._client.aclose()
