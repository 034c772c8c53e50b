"""FastAPI routers for the query API and the agent tool endpoint."""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator, model_validator

from archives.core.encoding.wire import encode_data_points, encode_logs
from archives.core.errors import (
    ArchivesError,
    InvalidParameterError,
    SerializationError,
)
from archives.core.health import status_report
from archives.core.models import (
    Aggregation,
    LogSearchParams,
    LogSeverity,
    MetricQueryParams,
    TimeRange,
)
from archives.core.time_range import paginate
from archives.core.tools import ToolDispatcher, ToolResponse, list_tools
from archives.core.translator import QueryTranslator

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class _TimeWindowRequest(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def check_window(self) -> "_TimeWindowRequest":
        if self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


class LogSearchRequest(_TimeWindowRequest):
    """Body of ``POST /v1/logs/search``."""

    query: str | None = None
    min_severity: LogSeverity | None = None
    service: str | None = None
    offset: int | None = Field(default=None, ge=0)
    limit: int | None = Field(default=None, gt=0)

    @field_validator("min_severity", mode="before")
    @classmethod
    def parse_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return LogSeverity.parse(value)
            except InvalidParameterError as e:
                raise ValueError(e.detail) from e
        return value

    def to_params(self) -> LogSearchParams:
        return LogSearchParams(
            time_range=self.time_range(),
            min_severity=self.min_severity,
            text_query=self.query,
            service_name=self.service,
            pagination=paginate(self.offset, self.limit),
        )


class MetricQueryRequest(_TimeWindowRequest):
    """Body of ``POST /v1/metrics/query``."""

    metric_name: str = Field(min_length=1)
    aggregation: Aggregation = Aggregation.AVG
    interval_seconds: int = Field(default=60, gt=0)
    labels: dict[str, str] | None = None

    @field_validator("aggregation", mode="before")
    @classmethod
    def parse_aggregation(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return Aggregation.parse(value)
            except InvalidParameterError as e:
                raise ValueError(e.detail) from e
        return value

    def to_params(self) -> MetricQueryParams:
        return MetricQueryParams(
            metric_name=self.metric_name,
            time_range=self.time_range(),
            aggregation=self.aggregation,
            interval_seconds=self.interval_seconds,
            labels=self.labels,
        )


async def _health_response(translator: QueryTranslator) -> JSONResponse:
    store_ok = await translator.health_check()
    return JSONResponse(
        content={"status": "healthy" if store_ok else "unhealthy", "store": store_ok},
        status_code=200 if store_ok else 503,
    )


def create_api_router(translator: QueryTranslator, version: str) -> APIRouter:
    """Create a FastAPI router with the log and metric query endpoints.

    Store failures are reported as HTTP 500 with an empty result list and an
    ``error`` message, so clients always get the documented shape.

    Args:
        translator: Shared QueryTranslator.
        version: Service version reported by ``/v1/status``.

    Returns:
        APIRouter with /health and /v1/* endpoints configured.
    """
    router = APIRouter()

    @router.get("/health")
    async def health() -> JSONResponse:
        """Report whether the store is reachable."""
        return await _health_response(translator)

    @router.get("/v1/status")
    async def get_status() -> JSONResponse:
        report = await status_report(translator, version)
        return JSONResponse(
            content=report, status_code=200 if report["status"] == "ok" else 500
        )

    @router.post("/v1/logs/search")
    async def search_logs(request: LogSearchRequest) -> JSONResponse:
        """Search logs, newest first."""
        try:
            entries = await translator.search_logs(request.to_params())
        except ArchivesError as e:
            logger.error("Log search failed: %s", e)
            return JSONResponse(content={"logs": [], "error": str(e)}, status_code=500)
        return JSONResponse(content={"logs": encode_logs(entries)})

    @router.get("/v1/logs/{log_id}")
    async def get_log(log_id: str) -> JSONResponse:
        """Single-log lookup is not supported: OTEL log rows carry no stable id."""
        return JSONResponse(
            content={
                "error": f"Log lookup by id is not supported ({log_id}); "
                "use /v1/logs/search"
            },
            status_code=501,
        )

    @router.post("/v1/metrics/query")
    async def query_metrics(request: MetricQueryRequest) -> JSONResponse:
        """Aggregate one metric into time buckets, oldest first."""
        try:
            points = await translator.query_metrics(request.to_params())
        except ArchivesError as e:
            logger.error("Metric query failed: %s", e)
            return JSONResponse(content={"data": [], "error": str(e)}, status_code=500)
        return JSONResponse(content={"data": encode_data_points(points)})

    @router.get("/v1/metrics/names")
    async def metric_names() -> JSONResponse:
        try:
            names = await translator.list_metric_names()
        except ArchivesError as e:
            logger.error("Listing metric names failed: %s", e)
            return JSONResponse(content={"names": [], "error": str(e)}, status_code=500)
        return JSONResponse(content={"names": names})

    return router


def create_tools_router(
    dispatcher: ToolDispatcher, translator: QueryTranslator
) -> APIRouter:
    """Create a FastAPI router exposing the agent tools.

    ``POST /mcp`` always answers 200: failures, including a malformed body,
    come back in-band as ``{"success": false, "error": ...}``.

    Args:
        dispatcher: ToolDispatcher executing the tools.
        translator: QueryTranslator used for the store health probe.

    Returns:
        APIRouter with /health, /ping, /tools and /mcp endpoints configured.
    """
    router = APIRouter()

    @router.get("/health")
    async def health() -> JSONResponse:
        return await _health_response(translator)

    @router.get("/ping")
    async def ping() -> dict[str, bool]:
        return {"pong": True}

    @router.get("/tools")
    async def tools() -> dict[str, Any]:
        """Describe every tool with its JSON input schema."""
        return {"tools": [tool.to_dict() for tool in list_tools()]}

    @router.post("/mcp", response_model=ToolResponse, response_model_exclude_none=True)
    async def call_tool(request: Request) -> ToolResponse:
        try:
            body = await request.json()
        except ValueError as e:
            logger.warning("Rejected tool call with unreadable body: %s", e)
            return ToolResponse(success=False, error=str(SerializationError(str(e))))
        if not isinstance(body, dict) or not isinstance(body.get("tool"), str):
            return ToolResponse(
                success=False,
                error=str(InvalidParameterError("body must be {tool, params?}")),
            )
        return await dispatcher.invoke(body["tool"], body.get("params"))

    return router
