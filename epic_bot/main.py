"""
FastAPI application entry point.
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from epic_bot import __version__
from epic_bot.api.deps import container
from epic_bot.api.v1 import health, slack
from epic_bot.core.config import settings
from epic_bot.core.constants import API_PREFIX, SLACK_PREFIX
from epic_bot.core.exceptions import ConfigurationError, EpicBotError
from epic_bot.core.logging import get_logger, setup_logging
from epic_bot.tasks.session_sweep import start_sweep_background_task

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "Starting Epic Bot",
        app_name=settings.app_name,
        env=settings.app_env,
        version=__version__,
    )

    try:
        container.settings.require_credentials()
    except ConfigurationError as e:
        logger.error("Startup aborted", error=e.message, missing=e.details.get("missing"))
        raise

    container.initialize()
    logger.info("Service container initialized")

    sweep_task = start_sweep_background_task(
        container.engine,
        interval_seconds=container.settings.session.sweep_interval_seconds,
    )

    yield

    # Shutdown
    logger.info("Shutting down Epic Bot")
    sweep_task.cancel()
    with suppress(asyncio.CancelledError):
        await sweep_task
    await container.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Epic Bot",
    description="Slack bot that turns a one-line feature request into reviewed user stories on GitHub",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)


# Exception handlers
@app.exception_handler(EpicBotError)
async def epic_bot_error_handler(
    request: Request,
    exc: EpicBotError,
) -> JSONResponse:
    """Handle custom application errors."""
    logger.error(
        "Application error",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected errors."""
    logger.exception(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


# Include routers
app.include_router(health.router, prefix=API_PREFIX, tags=["Health"])
app.include_router(slack.router, prefix=SLACK_PREFIX, tags=["Slack"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "endpoints": {
            "health": f"{API_PREFIX}/health",
            "commands": f"{SLACK_PREFIX}/commands",
            "events": f"{SLACK_PREFIX}/events",
            "interactions": f"{SLACK_PREFIX}/interactions",
        },
    }
