"""Port interfaces for store adapters.

These protocols define the contracts that store adapters must implement.
The query translator depends only on these interfaces, not on a concrete
database client.
"""

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from archives.core.models import Aggregation

Row = Mapping[str, Any]


@runtime_checkable
class SqlDialect(Protocol):
    """SQL fragments that differ between store engines.

    Query templates use positional ``?`` bind markers regardless of dialect;
    rewriting them into the engine's own parameter syntax is the executor's
    job.
    """

    def uuid_expr(self) -> str:
        """Expression producing a fresh unique id per row."""
        ...

    def ilike(self, column: str) -> str:
        """Case-insensitive LIKE predicate against one bind marker."""
        ...

    def time_bucket(self, column: str, interval_seconds: int) -> str:
        """Expression truncating ``column`` to an epoch-aligned bucket start."""
        ...

    def aggregate(self, aggregation: Aggregation, column: str) -> str:
        """Aggregate expression applying ``aggregation`` to ``column``."""
        ...

    def bind_time(self, value: datetime) -> Any:
        """Convert a timezone-aware datetime into a bindable value."""
        ...

    def stats_query(self) -> tuple[str, list[Any]]:
        """Query returning ``table_name``, ``row_count`` and ``byte_count`` rows."""
        ...


@runtime_checkable
class QueryExecutorPort(Protocol):
    """Port for executing parameterized read queries.

    Adapters implementing this protocol run a query template with positional
    bind values and return typed rows keyed by column alias.
    Examples: ClickHouseExecutor, SQLiteExecutor.
    """

    dialect: SqlDialect

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """Execute a query and return all rows.

        Raises:
            StoreConnectionError: The store could not be reached.
            StoreQueryError: The store failed the query.
        """
        ...

    async def ping(self) -> bool:
        """Return True if the store answers a trivial query."""
        ...

    async def close(self) -> None:
        """Release the underlying connection resources."""
        ...
