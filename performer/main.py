"""Performer - FastAPI Application Entry Point.

Headless drive engine for a virtual performer: synthesizes viseme
timelines and streams composited poses to rendering clients.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from performer import PerformerError, __version__
from performer.api.routes import health, performance
from performer.collaborators.transcode import FfmpegTranscoder
from performer.config.settings import get_settings
from performer.observability.logging import get_logger, init_logging
from performer.observability.metrics import set_build_info

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown of the engine.
    """
    settings = get_settings()
    init_logging(json_format=settings.environment == "production", level=settings.log_level)
    logger.info(
        "performer_starting",
        version=__version__,
        environment=settings.environment,
        port=settings.api_port,
    )

    try:
        if settings.metrics_enabled:
            set_build_info(__version__)

        engine = performance.get_engine()
        health.set_component_health("engine", True)
        health.set_component_health("speech", engine.speech_supported)
        health.set_component_health(
            "transcoder",
            settings.transcode_enabled and FfmpegTranscoder(settings.ffmpeg_path).is_available,
        )

        health.set_ready(True)
        logger.info("performer_ready", components=health.get_component_health())

    except PerformerError as e:
        logger.error("performer_startup_failed", **e.to_dict())
        raise

    yield

    logger.info("performer_shutting_down")
    health.set_ready(False)

    await performance.get_broadcaster().disconnect_all()
    performance.reset_engine()
    health.set_component_health("engine", False)

    logger.info("performer_shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Performer",
        description="Real-time drive engine for a virtual performer",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(performance.router)

    @app.exception_handler(PerformerError)
    async def performer_exception_handler(request: Request, exc: PerformerError) -> JSONResponse:
        logger.warning("performer_error", path=request.url.path, **exc.to_dict())
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level),
    )

    uvicorn.run(
        "performer.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=settings.environment == "development",
    )
