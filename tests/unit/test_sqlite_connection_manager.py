"""Tests for the SQLite connection manager.

These tests verify that the manager applies the schema once, runs the
per-connection hook on every connection and keeps a single persistent
connection for :memory: databases.
"""

from pathlib import Path

import aiosqlite
import pytest

from archives.adapters.storage.sqlite import interpolated_quantile
from archives.adapters.storage.sqlite_base import AsyncConnectionManager
from archives.core.errors import StoreConnectionError

pytestmark = [pytest.mark.storage, pytest.mark.tier(1)]

# Schema for testing - creates a simple test table
TEST_SCHEMA = """
CREATE TABLE IF NOT EXISTS test_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
"""


class TestAsyncConnectionManager:
    """Tests for AsyncConnectionManager."""

    async def test_initializes_schema(self) -> None:
        """The schema exists on the first connection handed out."""
        manager = AsyncConnectionManager(":memory:", TEST_SCHEMA)
        try:
            async with manager.connection() as conn:
                await conn.execute("INSERT INTO test_items (name) VALUES (?)", ("a",))
                await conn.commit()
                cursor = await conn.execute("SELECT COUNT(*) FROM test_items")
                row = await cursor.fetchone()
                assert row[0] == 1
        finally:
            await manager.close()

    async def test_memory_connection_is_persistent(self) -> None:
        """A :memory: database hands out the same connection every time."""
        manager = AsyncConnectionManager(":memory:", TEST_SCHEMA)
        try:
            async with manager.connection() as first:
                await first.execute("INSERT INTO test_items (name) VALUES ('x')")
                await first.commit()
            async with manager.connection() as second:
                assert second is first
                cursor = await second.execute("SELECT name FROM test_items")
                assert await cursor.fetchall() == [("x",)]
        finally:
            await manager.close()

    async def test_hook_runs_for_every_file_connection(self, tmp_path: Path) -> None:
        """The hook runs for the schema connection and for each use."""
        seen: list[aiosqlite.Connection] = []

        async def hook(conn: aiosqlite.Connection) -> None:
            seen.append(conn)

        manager = AsyncConnectionManager(str(tmp_path / "t.db"), TEST_SCHEMA, hook)
        async with manager.connection():
            pass
        async with manager.connection():
            pass
        # one connection for schema setup, then one per use
        assert len(seen) == 3

    async def test_file_database_uses_wal(self, tmp_path: Path) -> None:
        """File databases are switched to WAL journaling."""
        manager = AsyncConnectionManager(str(tmp_path / "t.db"), TEST_SCHEMA)
        async with manager.connection() as conn:
            cursor = await conn.execute("PRAGMA journal_mode")
            assert (await cursor.fetchone())[0] == "wal"

    async def test_unopenable_path_is_a_connection_error(self, tmp_path: Path) -> None:
        """A path that cannot be opened is a StoreConnectionError."""
        manager = AsyncConnectionManager(
            str(tmp_path / "missing" / "dir" / "t.db"), TEST_SCHEMA
        )
        with pytest.raises(StoreConnectionError):
            async with manager.connection():
                pass

    async def test_broken_memory_schema_is_a_connection_error(self) -> None:
        """A schema that fails on :memory: leaves no connection behind."""
        manager = AsyncConnectionManager(":memory:", "CREATE TABL broken;")
        with pytest.raises(StoreConnectionError, match=":memory:"):
            async with manager.connection():
                pass
        assert manager._persistent_conn is None
        assert manager._initialized is False


class TestInterpolatedQuantile:
    """Tests for the quantile function registered with SQLite."""

    def test_empty_group(self) -> None:
        """An empty group has no quantile."""
        assert interpolated_quantile(0.5, None) is None
        assert interpolated_quantile(0.5, "") is None

    def test_single_value(self) -> None:
        """A single value is every quantile."""
        assert interpolated_quantile(0.99, "4.0") == 4.0

    def test_median_interpolates(self) -> None:
        """The median of an even count interpolates between the middle values."""
        assert interpolated_quantile(0.5, "1.0,2.0,3.0,4.0") == 2.5

    def test_order_does_not_matter(self) -> None:
        """Values are sorted before interpolating."""
        assert interpolated_quantile(0.5, "3,1,2") == 2.0

    def test_upper_quantile(self) -> None:
        """Upper quantiles interpolate linearly between ranks."""
        values = ",".join(str(float(v)) for v in range(1, 101))
        assert interpolated_quantile(0.9, values) == pytest.approx(90.1)
