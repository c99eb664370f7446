"""FastAPI application entry-point for the Explain This PR webhook service."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from diff_engine.state.database import create_tables
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from webhook_api import __version__
from webhook_api.config import load_api_settings
from webhook_api.dependencies import (
    close_github_client,
    close_summary_engine,
    dispose_engine,
    init_engine,
    init_github_client,
    init_summary_engine,
)
from webhook_api.middleware.json_formatter import configure_json_logging
from webhook_api.middleware.logging import RequestLoggingMiddleware
from webhook_api.routers import billing, health, playground, webhooks

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup:
    - Switch to JSON logging if configured.
    - Initialise the async database engine and create missing tables.
    - Build the GitHub App client and the summary engine.

    On shutdown the clients are closed and the engine pool is disposed.
    """
    settings = load_api_settings()

    if settings.structured_logging:
        configure_json_logging(logging.DEBUG if settings.debug else logging.INFO)
        logger.info("Structured JSON logging enabled")

    engine = init_engine(settings)
    logger.info(
        "Database engine initialised (%s)",
        "local SQLite" if settings.database_url.startswith("sqlite") else "postgres",
    )
    if settings.auto_create_tables:
        await create_tables(engine)
        logger.info("Database tables ensured")

    init_github_client(settings)
    summary_engine = init_summary_engine(settings)
    logger.info("Summary engine initialised (model=%s)", summary_engine.config.model)

    yield

    await close_summary_engine()
    await close_github_client()
    await dispose_engine()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    app = FastAPI(
        title="Explain This PR",
        description="GitHub App that explains pull requests with an LLM.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router)
    app.include_router(webhooks.router)
    app.include_router(playground.router)
    app.include_router(billing.router)

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"message": "Invalid request"})

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"message": "Internal database error"})

    return app


# Module-level application instance used by ``uvicorn webhook_api.main:app``.
app = create_app()
