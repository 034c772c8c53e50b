"""Shared test fixtures for all test modules."""

from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

from archives.adapters.storage.sqlite import SQLiteExecutor
from archives.config import Settings, load_settings
from archives.core import time_range
from tests.helpers import NOW, NOW_TS


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for store tests."""
    return str(tmp_path / "archives.db")


@pytest.fixture
def frozen_clock(monkeypatch: pytest.MonkeyPatch) -> datetime:
    """Pin time.time() to NOW_TS for the time-window helpers."""
    monkeypatch.setattr(time_range, "time", SimpleNamespace(time=lambda: NOW_TS))
    return NOW


@pytest.fixture
async def sqlite_executor(db_path: str) -> AsyncGenerator[SQLiteExecutor, None]:
    """File-backed SQLite executor, closed after the test."""
    executor = SQLiteExecutor(db_path)
    yield executor
    await executor.close()


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""
    from archives.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts."""
    from archives.adapters.frameworks.asgi import Scope

    def _scope(method: str = "GET", path: str = "/test") -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": b"",
            "headers": [],
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""
    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_receive():
    async def receive():
        return {"type": "http.request", "body": b""}

    return receive


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            app = create_api_app(settings, executor)
            async with asgi_test_client(app) as client:
                response = await client.get("/health")
    """

    def _get_client(app):
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client


@pytest.fixture
def app_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings loaded from an empty directory, with the SQLite backend."""
    monkeypatch.chdir(tmp_path)
    return load_settings(store={"backend": "sqlite"})
