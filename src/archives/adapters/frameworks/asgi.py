"""ASGI middleware for request logging and request timeouts.

Works with any ASGI application; both services wrap their FastAPI apps in
it.
"""

import asyncio
import fnmatch
import json
import logging
import time
import uuid
from collections.abc import Callable, Coroutine
from typing import Any

from archives.adapters.logging import clear_log_context, set_log_context

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]


def _extract_request_id(scope: Scope, header_name: str = "X-Request-ID") -> str:
    """Extract or generate a request ID from ASGI scope headers.

    Args:
        scope: ASGI scope dictionary containing request metadata.
        header_name: Name of the header to search for, case-insensitively.

    Returns:
        The header value, or a new UUID if the header is absent.
    """
    header_bytes = header_name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in headers:
        if name.lower() == header_bytes:
            return str(value.decode("utf-8", errors="replace"))
    return str(uuid.uuid4())


def _get_log_level_for_status(status_code: int) -> int:
    """Map a response status onto a logging level.

    2xx and anything unrecognised log at INFO, 4xx at WARNING, 5xx at ERROR.
    """
    if 400 <= status_code < 500:
        return logging.WARNING
    if 500 <= status_code < 600:
        return logging.ERROR
    return logging.INFO


async def _send_json(send: Send, status: int, payload: dict[str, Any]) -> None:
    body = json.dumps(payload).encode()
    headers = [
        (b"content-type", b"application/json"),
        (b"content-length", str(len(body)).encode()),
    ]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body})


class RequestLoggingMiddleware:
    """ASGI middleware that logs one record per HTTP request.

    Each request gets a request id (taken from ``request_id_header`` or
    generated), which is bound to the log context while the request runs and
    echoed back in the response headers. When ``timeout_secs`` is set, a
    request that has not started its response in time is answered with 504.
    """

    def __init__(
        self,
        app: ASGIApp,
        exclude_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
        timeout_secs: float | None = None,
    ) -> None:
        """Initialize the middleware around a wrapped app.

        Args:
            app: The ASGI application to wrap.
            exclude_paths: Paths not to log. Supports exact matches and
                wildcard patterns (e.g., "/internal/*").
            request_id_header: Header carrying the caller's request id.
            timeout_secs: Per-request time limit, or None for no limit.
        """
        self.app = app
        self.exclude_paths = exclude_paths or []
        self.request_id_header = request_id_header
        self.timeout_secs = timeout_secs

    def _path_excluded(self, path: str) -> bool:
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        request_id = _extract_request_id(scope, self.request_id_header)
        id_header = (self.request_id_header.lower().encode(), request_id.encode())
        captured: dict[str, Any] = {"status": None, "body_size": 0, "exception": None}

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
                message = {
                    **message,
                    "headers": [*message.get("headers", []), id_header],
                }
            elif message["type"] == "http.response.body":
                captured["body_size"] += len(message.get("body", b""))
            await send(message)

        set_log_context(request_id=request_id)
        try:
            if self.timeout_secs is None:
                await self.app(scope, receive, wrapped_send)
            else:
                await asyncio.wait_for(
                    self.app(scope, receive, wrapped_send), self.timeout_secs
                )
        except TimeoutError:
            if captured["status"] is None:
                await _send_json(wrapped_send, 504, {"error": "Request timed out"})
            else:
                captured["exception"] = TimeoutError("response incomplete")
        except Exception as e:
            captured["exception"] = e
            captured["status"] = 500
        finally:
            duration = time.perf_counter() - start_time
            self._log_request(scope, request_id, captured, duration)
            clear_log_context()

        if captured["exception"] is not None:
            raise captured["exception"]

    def _log_request(
        self,
        scope: Scope,
        request_id: str,
        captured: dict[str, Any],
        duration: float,
    ) -> None:
        if self._path_excluded(scope["path"]):
            return
        status_code = captured["status"] or 0
        request_data: dict[str, Any] = {
            "request_id": request_id,
            "method": scope["method"],
            "path": scope["path"],
            "status_code": status_code,
            "response_body_size": captured["body_size"],
            "duration_ms": duration * 1000,
        }
        if captured["exception"] is not None:
            exc = captured["exception"]
            request_data["exception"] = f"{type(exc).__name__}: {exc!s}"
        logger.log(
            _get_log_level_for_status(status_code),
            "%s %s %d",
            scope["method"],
            scope["path"],
            status_code,
            extra=request_data,
        )
