"""Application factories and process entry points.

``create_api_app`` and ``create_tools_app`` build the two FastAPI services
over one shared translator each; ``run_api`` and ``run_tools`` are the
console entry points that load settings and serve them with uvicorn.
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import uvicorn
from fastapi import FastAPI

from archives import __version__
from archives.adapters.frameworks.asgi import RequestLoggingMiddleware
from archives.adapters.frameworks.fastapi import create_api_router, create_tools_router
from archives.adapters.logging import configure_logging
from archives.adapters.storage.clickhouse import ClickHouseExecutor
from archives.adapters.storage.sqlite import SQLiteExecutor
from archives.config import Settings, load_settings
from archives.core.ports import QueryExecutorPort
from archives.core.tools import ToolDispatcher
from archives.core.translator import QueryTranslator

logger = logging.getLogger(__name__)

_QUIET_PATHS = ["/health", "/ping"]


def build_executor(settings: Settings) -> QueryExecutorPort:
    """Create the store executor selected by ``settings.store.backend``."""
    if settings.store.backend == "sqlite":
        logger.info("Using SQLite store at %s", settings.sqlite.path)
        return SQLiteExecutor(settings.sqlite.path)
    ch = settings.clickhouse
    logger.info("Using ClickHouse store at %s (database %s)", ch.url, ch.database)
    return ClickHouseExecutor(
        url=ch.url,
        database=ch.database,
        username=ch.username,
        password=ch.password,
        timeout_secs=ch.timeout_secs,
    )


def _lifespan(
    executor: QueryExecutorPort, service: str
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if await executor.ping():
            logger.info("%s connected to store", service)
        else:
            logger.warning("%s started but the store is unreachable", service)
        yield
        await executor.close()
        logger.info("%s shut down", service)

    return lifespan


def create_api_app(
    settings: Settings | None = None,
    executor: QueryExecutorPort | None = None,
) -> FastAPI:
    """Build the HTTP query API.

    Args:
        settings: Settings to use; loaded from the environment when omitted.
        executor: Store executor; built from ``settings`` when omitted.

    Returns:
        FastAPI application serving /health and /v1/*.
    """
    if settings is None:
        settings = load_settings()
    if executor is None:
        executor = build_executor(settings)
    translator = QueryTranslator(executor)
    app = FastAPI(
        title="Archives API",
        version=__version__,
        lifespan=_lifespan(executor, "API server"),
    )
    app.include_router(create_api_router(translator, __version__))
    app.add_middleware(
        RequestLoggingMiddleware,
        exclude_paths=_QUIET_PATHS,
        timeout_secs=settings.api.timeout_secs,
    )
    return app


def create_tools_app(
    settings: Settings | None = None,
    executor: QueryExecutorPort | None = None,
) -> FastAPI:
    """Build the agent tool service.

    Args:
        settings: Settings to use; loaded from the environment when omitted.
        executor: Store executor; built from ``settings`` when omitted.

    Returns:
        FastAPI application serving /health, /ping, /tools and /mcp.
    """
    if settings is None:
        settings = load_settings()
    if executor is None:
        executor = build_executor(settings)
    translator = QueryTranslator(executor)
    app = FastAPI(
        title="Archives Tools",
        version=__version__,
        lifespan=_lifespan(executor, "Tool server"),
    )
    app.include_router(create_tools_router(ToolDispatcher(translator), translator))
    app.add_middleware(RequestLoggingMiddleware, exclude_paths=_QUIET_PATHS)
    return app


def _bootstrap() -> Settings:
    settings = load_settings()
    configure_logging(settings.logging.level, settings.logging.json_output)
    return settings


def run_api() -> None:
    """Serve the HTTP query API."""
    settings = _bootstrap()
    logger.info(
        "Starting Archives API %s on %s:%d",
        __version__,
        settings.api.host,
        settings.api.port,
    )
    uvicorn.run(
        create_api_app(settings),
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,
    )


def run_tools() -> None:
    """Serve the agent tool endpoint, unless disabled in settings."""
    settings = _bootstrap()
    if not settings.mcp.enabled:
        logger.info("Tool server disabled by configuration")
        return
    logger.info(
        "Starting Archives tool server %s on %s:%d",
        __version__,
        settings.mcp.host,
        settings.mcp.port,
    )
    uvicorn.run(
        create_tools_app(settings),
        host=settings.mcp.host,
        port=settings.mcp.port,
        log_config=None,
    )
