"""
FastAPI application for Search Gateway MCP.

PURPOSE: Application factory, lifespan wiring and server runner.
AI CONTEXT: Creates the app with all routes registered and the shared
AnalyticsStore, SessionRegistry and AnalyticsScheduler on app.state.

LIFESPAN:
- Startup: load the analytics snapshot, start periodic flushing
- Shutdown: stop flushing (which persists once more), close all sessions
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..__version__ import __version__
from ..analytics import AnalyticsStore
from ..config import Config
from ..dispatcher import RequestDispatcher
from ..registry import SessionRegistry
from ..scheduler import AnalyticsScheduler
from .routes import router

__all__ = ["create_app", "run_server"]

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "OPTIONS", "DELETE"]
CORS_HEADERS = ["Content-Type", "Authorization", Config.SESSION_HEADER, "x-api-key"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """
    Manage application lifecycle with startup/shutdown hooks.

    uvicorn turns SIGINT/SIGTERM into this shutdown path, so a clean stop
    always ends with a final analytics flush.

    Args:
        app: The FastAPI application instance (provided by FastAPI).

    Yields:
        None. Control returns to FastAPI to handle requests.
    """
    store: AnalyticsStore = app.state.store
    scheduler: AnalyticsScheduler = app.state.scheduler
    registry: SessionRegistry = app.state.registry

    logger.info(f"{Config.SERVER_NAME} starting (v{__version__})")
    store.load()
    scheduler.start()
    try:
        yield
    finally:
        logger.info(f"{Config.SERVER_NAME} shutting down")
        await scheduler.stop()
        registry.close_all()


def create_app(
    store: AnalyticsStore | None = None,
    registry: SessionRegistry | None = None,
    scheduler: AnalyticsScheduler | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI gateway application.

    Factory function so tests can inject their own store (usually backed by
    a MockFileSystem) and registry.

    Args:
        store: Analytics state. Default: AnalyticsStore() on Config paths.
        registry: Session map. Default: SessionRegistry().
        scheduler: Flush task. Default: AnalyticsScheduler(store).

    Returns:
        Configured FastAPI application with CORS, all routes, and the
        shared components on app.state.

    Example:
        >>> from fastapi.testclient import TestClient
        >>> with TestClient(create_app()) as client:
        ...     client.get('/health').json()['status']
        'healthy'
    """
    if store is None:
        store = AnalyticsStore()
    # SessionRegistry defines __len__; an empty one is falsy
    if registry is None:
        registry = SessionRegistry()

    app = FastAPI(
        title=Config.SERVER_NAME,
        description=Config.SERVER_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.registry = registry
    app.state.scheduler = scheduler or AnalyticsScheduler(store)
    app.state.dispatcher = RequestDispatcher(store, registry)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=[Config.SESSION_HEADER],
    )
    app.include_router(router)

    return app


def run_server(
    host: str | None = None,
    port: int | None = None,
    log_level: str = "info",
) -> None:
    """
    Launch the gateway under uvicorn.

    Blocks until the server is stopped (Ctrl+C or SIGTERM).

    Args:
        host: Bind address. Default: Config.get_host()
        port: TCP port. Default: Config.get_port()
        log_level: Uvicorn logging verbosity.

    Raises:
        OSError: If the port is already in use or host is invalid.
    """
    uvicorn.run(
        "search_gateway_mcp.web.app:create_app",
        factory=True,
        host=host or Config.get_host(),
        port=port or Config.get_port(),
        log_level=log_level,
    )
