"""
FastAPI application for the video processing pipeline.

Provides the HTTP API for processing requests and a WebSocket channel for
live progress sessions.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from vidforge.api import routes, websocket
from vidforge.config import Settings, get_settings
from vidforge.errors import VidforgeError, new_correlation_id
from vidforge.logging_config import correlation_context, setup_logging
from vidforge.models.schemas import ErrorResponse
from vidforge.services.broadcaster import ProgressBroadcaster
from vidforge.services.container import ServiceContainer

logger = logging.getLogger(__name__)

SESSION_REAP_INTERVAL = 60.0


def _error_response(status_code: int, category: str, correlation_id: str) -> JSONResponse:
    body = ErrorResponse(error=category, correlation_id=correlation_id)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


async def vidforge_error_handler(request: Request, exc: VidforgeError) -> JSONResponse:
    """Map domain errors to {"error", "correlationId"} without internal detail."""
    with correlation_context(exc.correlation_id):
        if exc.status_code >= 500:
            logger.error(f"{request.url.path}: {exc.message}")
        else:
            logger.info(f"{request.url.path} rejected: {exc.message}")
    return _error_response(exc.status_code, exc.category, exc.correlation_id)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are reported as invalid_request (400)."""
    correlation_id = new_correlation_id()
    with correlation_context(correlation_id):
        logger.info(f"{request.url.path} invalid body: {exc.errors()}")
    return _error_response(400, "invalid_request", correlation_id)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; full detail goes to the log only."""
    correlation_id = new_correlation_id()
    with correlation_context(correlation_id):
        logger.exception(f"Unhandled error on {request.url.path}", exc_info=exc)
    return _error_response(500, "internal_error", correlation_id)


async def reap_sessions(broadcaster: ProgressBroadcaster, interval: float = SESSION_REAP_INTERVAL) -> None:
    """Periodically destroy idle sessions past their TTL."""
    while True:
        await asyncio.sleep(interval)
        expired = broadcaster.purge_expired()
        if expired:
            logger.info(f"Purged {len(expired)} expired sessions")


def create_app(
    settings: Settings | None = None,
    services: ServiceContainer | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (default: get_settings())
        services: Pre-built service container; when given, the lifespan
            uses it as is and does not close it on shutdown

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Builds shared services and runs the session reaper.
        """
        logger.info("Starting vidforge API")
        logger.info(f"Log level: {settings.log_level}")
        logger.info(f"Uploads directory: {settings.uploads_dir}")
        logger.info(f"Work directory: {settings.work_dir}")

        container = services or ServiceContainer(settings)
        app.state.services = container
        reaper = asyncio.create_task(reap_sessions(container.broadcaster))

        yield

        reaper.cancel()
        await asyncio.gather(reaper, return_exceptions=True)
        if services is None:
            await container.aclose()
        logger.info("Shutting down vidforge API")

    app = FastAPI(
        title="vidforge API",
        description="API for the video transformation pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(VidforgeError, vidforge_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Include routers
    app.include_router(routes.router)
    app.include_router(websocket.router)

    if settings.storage_backend == "local":
        app.mount(
            "/files",
            StaticFiles(directory=settings.archive_dir, check_dir=False),
            name="files",
        )

    @app.get("/health")
    async def health_check() -> dict:
        """
        Health check endpoint.

        Returns:
            Basic health status
        """
        return {"status": "ok"}

    @app.get("/health/services")
    async def services_health(request: Request) -> dict:
        """
        Check collaborator availability.

        Returns:
            Status of Whisper, inference service and LLM client
        """
        status = await request.app.state.services.check_services()
        return {
            **status,
            "whisper_url": settings.whisper_url,
            "inference_url": settings.inference_url,
            "storage_backend": settings.storage_backend,
        }

    return app


# Configure logging before anything else
setup_logging(get_settings())
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vidforge.main:app",
        host="0.0.0.0",
        port=8802,
        reload=True,
    )
