"""Tests for logging setup and the JSON formatter."""

import io
import json
import logging
import sys
from collections.abc import Iterator

import pytest

from archives.adapters.logging import (
    JsonLogFormatter,
    clear_log_context,
    configure_logging,
    get_log_context,
    set_log_context,
)

pytestmark = pytest.mark.tier(1)


def _record(msg: str = "hello %s", args: tuple = ("world",), **extra: object):
    record = logging.LogRecord(
        name="archives.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    clear_log_context()


class TestJsonLogFormatter:
    """Tests for JsonLogFormatter."""

    def test_basic_fields(self) -> None:
        """Each line carries the level, logger, message and a UTC timestamp."""
        payload = json.loads(JsonLogFormatter().format(_record()))
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "archives.test"
        assert payload["message"] == "hello world"
        assert payload["timestamp"].endswith("+00:00")

    def test_extra_fields_are_included(self) -> None:
        """Fields passed through extra appear at the top level."""
        payload = json.loads(
            JsonLogFormatter().format(_record(request_id="abc", status_code=503))
        )
        assert payload["request_id"] == "abc"
        assert payload["status_code"] == 503

    def test_standard_attributes_are_not_duplicated(self) -> None:
        """Internal LogRecord attributes are left out of the payload."""
        payload = json.loads(JsonLogFormatter().format(_record()))
        assert "msg" not in payload
        assert "args" not in payload
        assert "levelno" not in payload

    def test_non_scalar_extra_is_repr(self) -> None:
        """Extra values that are not JSON scalars are rendered with repr."""
        payload = json.loads(JsonLogFormatter().format(_record(tags=["a", "b"])))
        assert payload["tags"] == "['a', 'b']"

    def test_exception_info(self) -> None:
        """Exception type, message and traceback are split into fields."""
        try:
            raise ValueError("bad value")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        payload = json.loads(JsonLogFormatter().format(record))
        assert payload["exc_type"] == "ValueError"
        assert payload["exc_message"] == "bad value"
        assert "Traceback" in payload["exc_traceback"]


class TestLogContext:
    """Tests for the per-request log context."""

    def test_set_and_clear(self) -> None:
        """Context fields accumulate until cleared."""
        set_log_context(request_id="r1")
        set_log_context(tool="search_logs")
        assert get_log_context() == {"request_id": "r1", "tool": "search_logs"}
        clear_log_context()
        assert get_log_context() == {}


class TestConfigureLogging:
    """Tests for configure_logging()."""

    @pytest.mark.usefixtures("restore_root_logger")
    def test_json_output_with_context(self) -> None:
        """JSON output merges the bound context into every record."""
        stream = io.StringIO()
        configure_logging("info", json_output=True, stream=stream)
        set_log_context(request_id="req-9")
        logging.getLogger("archives.test").info("served", extra={"path": "/v1/status"})
        line = json.loads(stream.getvalue().strip())
        assert line["message"] == "served"
        assert line["request_id"] == "req-9"
        assert line["path"] == "/v1/status"

    @pytest.mark.usefixtures("restore_root_logger")
    def test_level_filters(self) -> None:
        """Records below the configured level are dropped."""
        stream = io.StringIO()
        configure_logging("WARNING", stream=stream)
        logging.getLogger("archives.test").info("hidden")
        logging.getLogger("archives.test").warning("shown")
        output = stream.getvalue()
        assert "hidden" not in output
        assert "WARNING archives.test: shown" in output

    @pytest.mark.usefixtures("restore_root_logger")
    def test_reconfiguring_replaces_handler(self) -> None:
        """Configuring twice leaves only the newest handler installed."""
        first = configure_logging("INFO", stream=io.StringIO())
        second = configure_logging("INFO", stream=io.StringIO())
        handlers = logging.getLogger().handlers
        assert second in handlers
        assert first not in handlers
