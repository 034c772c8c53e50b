"""Connection lifecycle for the embedded SQLite store."""

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import aiosqlite

from archives.core.errors import StoreConnectionError

logger = logging.getLogger(__name__)

ConnectionHook = Callable[[aiosqlite.Connection], Awaitable[None]]

MEMORY_PATH = ":memory:"


class AsyncConnectionManager:
    """Manages aiosqlite connections for one database path.

    The schema is applied once, on first use. Every connection handed out has
    been passed through ``on_connect`` so per-connection state such as
    user-defined SQL functions is always present.

    For :memory: databases a single persistent connection is kept, since
    SQLite in-memory databases are connection-scoped.
    """

    def __init__(
        self,
        db_path: str,
        schema: str,
        on_connect: ConnectionHook | None = None,
    ) -> None:
        self._db_path = db_path
        self._schema = schema
        self._on_connect = on_connect
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_memory(self) -> bool:
        return self._db_path == MEMORY_PATH

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the lock binds to the running loop.
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    async def _open(self) -> aiosqlite.Connection:
        try:
            db = await aiosqlite.connect(self._db_path)
        except sqlite3.Error as e:
            raise StoreConnectionError(f"{self._db_path}: {e}") from e
        if self._on_connect is not None:
            await self._on_connect(db)
        return db

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self.is_memory:
                db = await self._open()
                try:
                    await db.executescript(self._schema)
                except sqlite3.Error as e:
                    await db.close()
                    raise StoreConnectionError(f"{self._db_path}: {e}") from e
                self._persistent_conn = db
            else:
                db = await self._open()
                try:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
                except sqlite3.Error as e:
                    raise StoreConnectionError(f"{self._db_path}: {e}") from e
                finally:
                    await db.close()
            logger.debug("Initialized SQLite store at %s", self._db_path)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        await self._ensure_initialized()
        if self.is_memory:
            if self._persistent_conn is None:
                raise StoreConnectionError("memory database connection not initialized")
            return self._persistent_conn
        return await self._open()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager yielding a ready connection.

        File-backed connections are closed on exit; the :memory: connection
        stays open until ``close()``.
        """
        db = await self._get_connection()
        try:
            yield db
        finally:
            if not self.is_memory:
                await db.close()

    async def close(self) -> None:
        """Close the persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False
