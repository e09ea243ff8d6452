"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from facecrop.api.routes import router
from facecrop.config import get_settings
from facecrop.errors import ImageCropError, OutputTooLargeError, UploadRejectedError, WorkersBusyError
from facecrop.imaging.pipeline import CropPipeline
from facecrop.ml.detection_service import FaceDetectionService
from facecrop.workers import CropWorkerPool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting FaceCrop (detector=%s, device=%s, max_concurrent=%s)",
        settings.face_detection_model,
        settings.device,
        settings.max_concurrent,
    )

    detection = FaceDetectionService(settings)
    if settings.preload_models:
        detection.load()
    app.state.pipeline = CropPipeline(settings, detection=detection)
    app.state.worker_pool = CropWorkerPool(settings)

    logger.info("FaceCrop ready")
    yield

    logger.info("Shutting down FaceCrop")
    app.state.worker_pool.shutdown()
    app.state.pipeline.close()
    logger.info("FaceCrop shutdown complete")


async def handle_crop_error(request: Request, exc: Exception) -> JSONResponse:
    """Report pipeline and upload errors with their user-facing message."""
    if isinstance(exc, UploadRejectedError):
        status_code = exc.status_code
    elif isinstance(exc, OutputTooLargeError):
        status_code = 413
    elif isinstance(exc, WorkersBusyError):
        status_code = 503
    else:
        status_code = 422
    message = exc.message if isinstance(exc, ImageCropError) else str(exc)
    logger.info("%s %s rejected: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=status_code, content={"detail": message})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="FaceCrop",
        description="Face-focused image cropping and compression API",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(ImageCropError, handle_crop_error)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the API with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run("facecrop.main:app", host=settings.host, port=settings.port)
