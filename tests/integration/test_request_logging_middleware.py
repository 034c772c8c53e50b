"""Integration tests for RequestLoggingMiddleware."""

import asyncio
import logging

import pytest

from archives.adapters.frameworks.asgi import (
    Receive,
    RequestLoggingMiddleware,
    Scope,
    Send,
)
from archives.adapters.logging import get_log_context

pytestmark = [pytest.mark.integration, pytest.mark.tier(1)]

LOGGER = "archives.adapters.frameworks.asgi"


def _status_app(status: int):
    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": status, "headers": []})
        await send({"type": "http.response.body", "body": b"payload"})

    return app


def _request_records(caplog: pytest.LogCaptureFixture) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.name == LOGGER]


class TestRequestId:
    """Tests for request id propagation."""

    async def test_incoming_id_is_echoed(
        self, basic_asgi_app, asgi_test_client
    ) -> None:
        """An incoming request id is echoed on the response."""
        app = RequestLoggingMiddleware(basic_asgi_app)
        async with asgi_test_client(app) as client:
            response = await client.get("/test", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    async def test_id_is_generated_when_absent(
        self, basic_asgi_app, asgi_test_client
    ) -> None:
        """A fresh UUID is generated when no id is sent."""
        app = RequestLoggingMiddleware(basic_asgi_app)
        async with asgi_test_client(app) as client:
            first = await client.get("/test")
            second = await client.get("/test")
        assert len(first.headers["X-Request-ID"]) == 36
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]

    async def test_custom_header(self, basic_asgi_app, asgi_test_client) -> None:
        """The request id header name is configurable."""
        app = RequestLoggingMiddleware(basic_asgi_app, request_id_header="X-Trace")
        async with asgi_test_client(app) as client:
            response = await client.get("/test", headers={"X-Trace": "t-1"})
        assert response.headers["X-Trace"] == "t-1"

    async def test_id_is_bound_during_request(self, asgi_test_client) -> None:
        """The request id is bound to the log context only while serving."""
        seen: list[dict] = []

        async def app(scope: Scope, receive: Receive, send: Send) -> None:
            seen.append(get_log_context())
            await _status_app(200)(scope, receive, send)

        wrapped = RequestLoggingMiddleware(app)
        async with asgi_test_client(wrapped) as client:
            await client.get("/test", headers={"X-Request-ID": "ctx-1"})
        assert seen == [{"request_id": "ctx-1"}]
        assert get_log_context() == {}


class TestRequestLog:
    """Tests for the per-request log record."""

    @pytest.mark.parametrize(
        ("status", "level"),
        [
            (200, logging.INFO),
            (302, logging.INFO),
            (404, logging.WARNING),
            (503, logging.ERROR),
        ],
    )
    async def test_level_follows_status(
        self,
        asgi_test_client,
        caplog: pytest.LogCaptureFixture,
        status: int,
        level: int,
    ) -> None:
        """The log level follows the response status class."""
        app = RequestLoggingMiddleware(_status_app(status))
        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            async with asgi_test_client(app) as client:
                await client.get("/v1/status")
        [record] = _request_records(caplog)
        assert record.levelno == level
        assert record.status_code == status
        assert record.method == "GET"
        assert record.path == "/v1/status"
        assert record.response_body_size == len(b"payload")
        assert record.duration_ms >= 0

    @pytest.mark.parametrize(
        ("path", "logged"),
        [("/health", False), ("/internal/x", False), ("/v1/status", True)],
    )
    async def test_exclude_paths(
        self,
        basic_asgi_app,
        asgi_test_client,
        caplog: pytest.LogCaptureFixture,
        path: str,
        logged: bool,
    ) -> None:
        """Excluded paths and patterns are served but not logged."""
        app = RequestLoggingMiddleware(
            basic_asgi_app, exclude_paths=["/health", "/internal/*"]
        )
        with caplog.at_level(logging.INFO, logger=LOGGER):
            async with asgi_test_client(app) as client:
                response = await client.get(path)
        assert response.status_code == 200
        assert bool(_request_records(caplog)) is logged


class TestFailures:
    """Tests for timeouts and exceptions."""

    async def test_timeout_answers_504(
        self, asgi_test_client, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A request past its timeout answers 504 and logs an error."""
        async def slow_app(scope: Scope, receive: Receive, send: Send) -> None:
            await asyncio.sleep(5)

        app = RequestLoggingMiddleware(slow_app, timeout_secs=0.05)
        with caplog.at_level(logging.INFO, logger=LOGGER):
            async with asgi_test_client(app) as client:
                response = await client.get("/v1/logs/search")
        assert response.status_code == 504
        assert response.json() == {"error": "Request timed out"}
        [record] = _request_records(caplog)
        assert record.levelno == logging.ERROR
        assert record.status_code == 504

    async def test_exception_is_logged_and_reraised(
        self,
        asgi_scope,
        asgi_receive,
        asgi_send_capture,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """An app exception is logged as a 500 and re-raised."""
        async def broken_app(scope: Scope, receive: Receive, send: Send) -> None:
            raise RuntimeError("kaboom")

        send, _ = asgi_send_capture
        app = RequestLoggingMiddleware(broken_app)
        with caplog.at_level(logging.INFO, logger=LOGGER):
            with pytest.raises(RuntimeError, match="kaboom"):
                await app(asgi_scope(), asgi_receive, send)
        [record] = _request_records(caplog)
        assert record.levelno == logging.ERROR
        assert record.status_code == 500
        assert record.exception == "RuntimeError: kaboom"

    async def test_non_http_scope_passes_through(self, asgi_send_capture) -> None:
        """Non-HTTP scopes reach the app untouched."""
        calls: list[str] = []

        async def app(scope: Scope, receive: Receive, send: Send) -> None:
            calls.append(scope["type"])

        send, _ = asgi_send_capture
        middleware = RequestLoggingMiddleware(app)

        async def receive() -> dict:
            return {"type": "lifespan.startup"}

        await middleware({"type": "lifespan"}, receive, send)
        assert calls == ["lifespan"]
