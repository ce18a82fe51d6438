"""
FastAPI Application

Entry point for the Order Analytics service: the dashboard read API and,
when Kafka is enabled, the event consumer running alongside it.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from order_analytics.config.settings import Settings, get_settings
from order_analytics.database.connection import Database
from order_analytics.ingestion.stream_consumer import create_stream_consumer
from order_analytics.serving.api.dependencies import ApiError, utc_now
from order_analytics.serving.api.middleware import (
    CORRELATION_HEADER,
    RequestLoggingMiddleware,
    get_correlation_id,
)
from order_analytics.serving.api.routes import analytics_router, health_router

logger = structlog.get_logger(__name__)


def _error_body(message: str) -> dict:
    return {
        "success": False,
        "data": None,
        "error": message,
        "timestamp": utc_now().isoformat(),
    }


def _describe_validation(exc: RequestValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("query", "header", "path"))
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "Invalid request: " + "; ".join(problems)


def log_consumer_exit(task: asyncio.Task) -> None:
    """Done callback for the background consumer task"""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(
            "Stream consumer exited with an error; no events are being consumed",
            error=str(error),
            error_type=type(error).__name__,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    database: Database = app.state.database

    from order_analytics.config.logging import configure_logging
    configure_logging(settings=settings)

    logger.info("Starting Order Analytics service", environment=settings.app_env)
    await database.connect()

    consumer_task = None
    if settings.kafka.enabled:
        consumer = create_stream_consumer(database, settings)
        app.state.consumer = consumer
        consumer_task = asyncio.create_task(consumer.start(), name="stream-consumer")
        consumer_task.add_done_callback(log_consumer_exit)

    yield

    logger.info("Shutting down...")
    if consumer_task is not None:
        await app.state.consumer.stop()
        consumer_task.cancel()
        await asyncio.gather(consumer_task, return_exceptions=True)
    await database.close()


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (defaults to cached environment settings)
        database: Storage handle (defaults to one built from ``settings.database``)

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Order Analytics API",
        description="Pre-aggregated order and payment metrics for dashboards",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database or Database(settings.database)
    app.state.consumer = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content=_error_body(_describe_validation(exc)))

    # Runs in ServerErrorMiddleware, outside RequestLoggingMiddleware
    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = get_correlation_id(request)
        logger.error(
            "Unhandled error",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
            correlation_id=correlation_id,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error"),
            headers={CORRELATION_HEADER: correlation_id},
        )

    app.include_router(health_router, tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])

    return app
