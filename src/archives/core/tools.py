"""Agent-facing tools built on the query translator.

The tool set is closed: ``ToolName`` enumerates exactly the five operations
and ``ToolDispatcher.dispatch`` matches over it. Each tool declares a JSON
input schema so calling agents can introspect it, and validates its
arguments with a pydantic model.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar, assert_never

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from archives.core.encoding.wire import agent_log_record, encode_data_points
from archives.core.errors import (
    ArchivesError,
    InternalError,
    InvalidParameterError,
    NotFoundError,
)
from archives.core.health import collect_system_health
from archives.core.models import (
    Aggregation,
    LogEntry,
    LogSearchParams,
    LogSeverity,
    MetricQueryParams,
    Pagination,
)
from archives.core.time_range import last_hours, last_minutes
from archives.core.translator import QueryTranslator

logger = logging.getLogger(__name__)

PATTERN_LENGTH = 100
ERROR_SUMMARY_FETCH_LIMIT = 1000
TAIL_WINDOW_MINUTES = 10
# Ten years; longer look-backs run past the earliest representable datetime.
MAX_HOURS = 24 * 365 * 10

_SEVERITY_NAMES = [str(s) for s in LogSeverity]
_AGGREGATION_NAMES = [str(a) for a in Aggregation]


class ToolName(StrEnum):
    SEARCH_LOGS = "search_logs"
    TAIL_LOGS = "tail_logs"
    GET_ERROR_SUMMARY = "get_error_summary"
    QUERY_METRICS = "query_metrics"
    GET_SYSTEM_HEALTH = "get_system_health"


@dataclass(frozen=True)
class ToolDefinition:
    """Introspectable description of one tool."""

    name: ToolName
    description: str
    input_schema: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": str(self.name),
            "description": self.description,
            "input_schema": self.input_schema,
        }


TOOL_DEFINITIONS: dict[ToolName, ToolDefinition] = {
    ToolName.SEARCH_LOGS: ToolDefinition(
        name=ToolName.SEARCH_LOGS,
        description=(
            "Search logs with time range, severity filter, and text query. "
            "Returns matching log entries."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Text to search for in log messages",
                },
                "hours": {
                    "type": "integer",
                    "description": "Number of hours to search back (default: 1)",
                    "default": 1,
                    "maximum": MAX_HOURS,
                },
                "min_severity": {
                    "type": "string",
                    "enum": _SEVERITY_NAMES,
                    "description": "Minimum severity level to include",
                },
                "service": {
                    "type": "string",
                    "description": "Filter by service name",
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of results (default: 50)",
                    "default": 50,
                },
            },
        },
    ),
    ToolName.TAIL_LOGS: ToolDefinition(
        name=ToolName.TAIL_LOGS,
        description=(
            "Get the most recent log entries. "
            "Useful for seeing what's happening right now."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "count": {
                    "type": "integer",
                    "description": "Number of recent logs to return (default: 20)",
                    "default": 20,
                },
                "min_severity": {
                    "type": "string",
                    "enum": _SEVERITY_NAMES,
                    "description": "Minimum severity level to include",
                },
                "service": {
                    "type": "string",
                    "description": "Filter by service name",
                },
            },
        },
    ),
    ToolName.GET_ERROR_SUMMARY: ToolDefinition(
        name=ToolName.GET_ERROR_SUMMARY,
        description=(
            "Get a summary of errors in the system. "
            "Groups errors by message pattern and shows counts."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "hours": {
                    "type": "integer",
                    "description": "Number of hours to analyze (default: 24)",
                    "default": 24,
                    "maximum": MAX_HOURS,
                },
                "limit": {
                    "type": "integer",
                    "description": (
                        "Maximum number of error patterns to return (default: 10)"
                    ),
                    "default": 10,
                },
            },
        },
    ),
    ToolName.QUERY_METRICS: ToolDefinition(
        name=ToolName.QUERY_METRICS,
        description=(
            "Query metrics with aggregation over time. Returns time series data."
        ),
        input_schema={
            "type": "object",
            "required": ["metric_name"],
            "properties": {
                "metric_name": {
                    "type": "string",
                    "description": "Name of the metric to query",
                },
                "hours": {
                    "type": "integer",
                    "description": "Number of hours to query (default: 1)",
                    "default": 1,
                    "maximum": MAX_HOURS,
                },
                "aggregation": {
                    "type": "string",
                    "enum": _AGGREGATION_NAMES,
                    "description": "Aggregation function (default: avg)",
                    "default": "avg",
                },
                "interval_seconds": {
                    "type": "integer",
                    "description": "Time bucket size in seconds (default: 60)",
                    "default": 60,
                },
            },
        },
    ),
    ToolName.GET_SYSTEM_HEALTH: ToolDefinition(
        name=ToolName.GET_SYSTEM_HEALTH,
        description=(
            "Get overall system health summary including error rates, "
            "log volume, and storage usage."
        ),
        input_schema={"type": "object", "properties": {}},
    ),
}


# --- Tool inputs ---


class _ToolInput(BaseModel):
    """Base for tool inputs: unknown keys are ignored, nulls mean "default"."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return {k: v for k, v in data.items() if v is not None}
        return data


class _SeverityFilterInput(_ToolInput):
    min_severity: LogSeverity | None = None
    service: str | None = None

    @field_validator("min_severity", mode="before")
    @classmethod
    def parse_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return LogSeverity.parse(value)
        return value


class SearchLogsInput(_SeverityFilterInput):
    query: str | None = None
    hours: int = Field(default=1, gt=0, le=MAX_HOURS)
    limit: int = Field(default=50, gt=0)


class TailLogsInput(_SeverityFilterInput):
    count: int = Field(default=20, gt=0)


class ErrorSummaryInput(_ToolInput):
    hours: int = Field(default=24, gt=0, le=MAX_HOURS)
    limit: int = Field(default=10, gt=0)


class QueryMetricsInput(_ToolInput):
    metric_name: str = Field(min_length=1)
    hours: int = Field(default=1, gt=0, le=MAX_HOURS)
    aggregation: Aggregation = Aggregation.AVG
    interval_seconds: int = Field(default=60, gt=0)

    @field_validator("aggregation", mode="before")
    @classmethod
    def parse_aggregation(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Aggregation.parse(value)
        return value


class SystemHealthInput(_ToolInput):
    pass


_InputT = TypeVar("_InputT", bound=_ToolInput)


def _validate(model: type[_InputT], params: Any) -> _InputT:
    if params is None:
        params = {}
    if not isinstance(params, Mapping):
        raise InvalidParameterError("tool params must be a JSON object")
    try:
        return model.model_validate(params)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'params'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidParameterError(problems) from e


class ToolResponse(BaseModel):
    """In-band result envelope for a tool invocation."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None


# --- Error pattern grouping ---


def pattern_key(body: str) -> str:
    """Group key for a log message: its first 100 characters, "..." if cut."""
    if len(body) > PATTERN_LENGTH:
        return body[:PATTERN_LENGTH] + "..."
    return body


def summarize_error_patterns(
    entries: Iterable[LogEntry], limit: int
) -> list[dict[str, Any]]:
    """Group entries by pattern key and return the most frequent patterns.

    Each pattern keeps the first body seen as its example. Patterns are
    ordered by descending count; equal counts keep first-seen order.

    Args:
        entries: Log entries, in the order the store returned them.
        limit: Maximum number of patterns to return.

    Returns:
        List of ``{"pattern", "count", "example"}`` dicts.
    """
    groups: dict[str, dict[str, Any]] = {}
    for entry in entries:
        key = pattern_key(entry.body)
        group = groups.get(key)
        if group is None:
            groups[key] = {"pattern": key, "count": 1, "example": entry.body}
        else:
            group["count"] += 1
    # sorted() is stable, so ties stay in insertion (first-seen) order
    ranked = sorted(groups.values(), key=lambda g: -g["count"])
    return ranked[:limit]


def resolve_tool(name: str) -> ToolName:
    """Look up a tool by name.

    Raises:
        NotFoundError: If no tool has that name.
    """
    try:
        return ToolName(name)
    except ValueError:
        raise NotFoundError(f"Tool not found: {name}") from None


def list_tools() -> list[ToolDefinition]:
    return list(TOOL_DEFINITIONS.values())


class ToolDispatcher:
    """Executes tools by name against a QueryTranslator."""

    def __init__(self, translator: QueryTranslator) -> None:
        self._translator = translator

    async def dispatch(self, name: str, params: Any = None) -> dict[str, Any]:
        """Run a tool and return its data.

        Raises:
            NotFoundError: Unknown tool name.
            InvalidParameterError: Arguments fail the tool's input model.
            StoreConnectionError, StoreQueryError: Propagated from the store.
        """
        tool = resolve_tool(name)
        match tool:
            case ToolName.SEARCH_LOGS:
                return await self._search_logs(_validate(SearchLogsInput, params))
            case ToolName.TAIL_LOGS:
                return await self._tail_logs(_validate(TailLogsInput, params))
            case ToolName.GET_ERROR_SUMMARY:
                return await self._error_summary(_validate(ErrorSummaryInput, params))
            case ToolName.QUERY_METRICS:
                return await self._query_metrics(_validate(QueryMetricsInput, params))
            case ToolName.GET_SYSTEM_HEALTH:
                _validate(SystemHealthInput, params)
                return await collect_system_health(self._translator)
            case _:
                assert_never(tool)

    async def invoke(self, name: str, params: Any = None) -> ToolResponse:
        """Run a tool and wrap the outcome in an in-band ToolResponse.

        Failures never escape: they come back as ``success=False`` with the
        error message, so a calling agent can always parse the result.
        """
        try:
            data = await self.dispatch(name, params)
        except ArchivesError as e:
            logger.error("Tool execution failed", extra={"tool": name, "error": str(e)})
            return ToolResponse(success=False, error=str(e))
        except Exception as e:
            logger.exception("Unexpected failure in tool", extra={"tool": name})
            return ToolResponse(success=False, error=str(InternalError(str(e))))
        return ToolResponse(success=True, data=data)

    async def _search_logs(self, p: SearchLogsInput) -> dict[str, Any]:
        logs = await self._translator.search_logs(
            LogSearchParams(
                time_range=last_hours(p.hours),
                min_severity=p.min_severity,
                text_query=p.query,
                service_name=p.service,
                pagination=Pagination(offset=0, limit=p.limit),
            )
        )
        records = [agent_log_record(entry) for entry in logs]
        return {"count": len(records), "logs": records}

    async def _tail_logs(self, p: TailLogsInput) -> dict[str, Any]:
        logs = await self._translator.search_logs(
            LogSearchParams(
                time_range=last_minutes(TAIL_WINDOW_MINUTES),
                min_severity=p.min_severity,
                service_name=p.service,
                pagination=Pagination(offset=0, limit=p.count),
            )
        )
        records = [agent_log_record(entry, include_trace=False) for entry in logs]
        return {"count": len(records), "logs": records}

    async def _error_summary(self, p: ErrorSummaryInput) -> dict[str, Any]:
        logs = await self._translator.search_logs(
            LogSearchParams(
                time_range=last_hours(p.hours),
                min_severity=LogSeverity.ERROR,
                pagination=Pagination(offset=0, limit=ERROR_SUMMARY_FETCH_LIMIT),
            )
        )
        return {
            "total_errors": len(logs),
            "time_range_hours": p.hours,
            "top_patterns": summarize_error_patterns(logs, p.limit),
        }

    async def _query_metrics(self, p: QueryMetricsInput) -> dict[str, Any]:
        points = await self._translator.query_metrics(
            MetricQueryParams(
                metric_name=p.metric_name,
                time_range=last_hours(p.hours),
                aggregation=p.aggregation,
                interval_seconds=p.interval_seconds,
            )
        )
        data = encode_data_points(points)
        return {
            "metric_name": p.metric_name,
            "aggregation": str(p.aggregation),
            "interval_seconds": p.interval_seconds,
            "data_points": len(data),
            "data": data,
        }
