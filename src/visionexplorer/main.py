"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from visionexplorer.api.pages import router as pages_router
from visionexplorer.api.routes import router
from visionexplorer.config import get_settings
from visionexplorer.ml.inference import InferencePool
from visionexplorer.ml.mobilenet import OnnxMobileNetRuntime
from visionexplorer.ml.model_manager import OnnxModelManager
from visionexplorer.ui.controller import VisionController

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: start the model load on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting Vision Explorer (device=%s, max_concurrent=%s, mobilenet v%s alpha=%s, top_k=%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_version,
        settings.model_alpha,
        settings.top_k,
    )

    inference_pool = InferencePool(settings)
    model_manager = OnnxModelManager(settings)
    controller = VisionController(settings, OnnxMobileNetRuntime(model_manager), inference_pool)
    app.state.inference_pool = inference_pool
    app.state.controller = controller

    controller.start()
    logger.info("Vision Explorer ready, model loading in background")
    yield

    logger.info("Shutting down Vision Explorer")
    model_manager.cancel_downloads()
    await controller.shutdown()
    inference_pool.shutdown()
    model_manager.shutdown()
    logger.info("Vision Explorer shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="Vision Explorer",
        description="Upload an image and classify it with a pretrained MobileNet",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    application.include_router(pages_router)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run("visionexplorer.main:app", host=settings.host, port=settings.port)
