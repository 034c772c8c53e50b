"""Store adapters implementing core ports."""

from archives.adapters.storage.clickhouse import ClickHouseDialect, ClickHouseExecutor
from archives.adapters.storage.sqlite import SQLiteDialect, SQLiteExecutor

__all__ = [
    "ClickHouseDialect",
    "ClickHouseExecutor",
    "SQLiteDialect",
    "SQLiteExecutor",
]
