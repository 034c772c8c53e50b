"""Standard library logging setup for the archives services.

Provides a JSON formatter for structured output, a per-request context that
is stamped onto every record, and ``configure_logging`` to install both on
the root logger.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, TextIO

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_log_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "archives_log_context", default=None
)


def set_log_context(**fields: Any) -> None:
    """Attach fields to every record logged in the current context."""
    current = _log_context.get() or {}
    _log_context.set({**current, **fields})


def clear_log_context() -> None:
    _log_context.set(None)


def get_log_context() -> dict[str, Any]:
    return dict(_log_context.get() or {})


class ContextFilter(logging.Filter):
    """Copies the current log context onto each record as extra attributes."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_log_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JsonLogFormatter(logging.Formatter):
    """Formats each record as one JSON object per line.

    Example:
        ```python
        handler = logging.StreamHandler()
        handler.setFormatter(JsonLogFormatter())
        logging.getLogger().addHandler(handler)
        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Extra attributes passed via the logging call or the log context
        for key, value in record.__dict__.items():
            if key in _STANDARD_LOGRECORD_ATTRS or key.startswith("_"):
                continue
            if isinstance(value, (str, int, float, bool)) or value is None:
                payload[key] = value
            else:
                payload[key] = repr(value)

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                payload["exc_type"] = exc_type.__name__
            if exc_value is not None:
                payload["exc_message"] = str(exc_value)
            if exc_tb is not None:
                payload["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )

        return json.dumps(payload, default=str)


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Install a single stream handler on the root logger.

    Calling this again replaces the handler installed by the previous call,
    so it is safe to call once per app factory.

    Args:
        level: Root log level name.
        json_output: Emit JSON lines instead of plain text.
        stream: Output stream. Defaults to stderr.

    Returns:
        The installed handler.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_archives_handler", False):
            root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler._archives_handler = True  # type: ignore[attr-defined]
    if json_output:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    handler.addFilter(ContextFilter())
    root.addHandler(handler)
    root.setLevel(level.upper())
    return handler
