"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from healthysnacks.ml.image_classifier import ImageClassifier

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from healthysnacks.api.routes import router
from healthysnacks.config import Settings, get_settings
from healthysnacks.ml.display import ResultScreen
from healthysnacks.ml.image_classifier import OnnxImageClassifier
from healthysnacks.ml.inference import InferencePool
from healthysnacks.ml.model_manager import OnnxModelManager
from healthysnacks.ml.preprocessing import TargetSize
from healthysnacks.service import ClassificationService

logger = logging.getLogger(__name__)


def init_state(app: FastAPI, settings: Settings, classifiers: Sequence[ImageClassifier] | None = None) -> None:
    """Build the inference pool, models, screen, and service onto app.state."""
    model_manager = OnnxModelManager(settings)
    inference_pool = InferencePool(settings)
    screen = ResultScreen()
    if classifiers is None:
        classifiers = [
            OnnxImageClassifier(settings.snack_model, model_manager, top_k=settings.top_k),
            OnnxImageClassifier(settings.health_model, model_manager, top_k=settings.top_k),
        ]

    app.state.settings = settings
    app.state.model_manager = model_manager
    app.state.inference_pool = inference_pool
    app.state.screen = screen
    app.state.classification_service = ClassificationService(
        classifiers,
        inference_pool,
        screen,
        target=TargetSize.square(settings.target_size),
        confidence_threshold=settings.confidence_threshold,
        max_image_pixels=settings.max_image_pixels,
        model_manager=model_manager,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting HealthySnacks (device=%s, max_concurrent=%s, snack=%s, health=%s, target=%s)",
        settings.device,
        settings.max_concurrent,
        settings.snack_model,
        settings.health_model,
        settings.target_size,
    )

    init_state(app, settings)

    logger.info("HealthySnacks ready")
    yield

    logger.info("Shutting down HealthySnacks")
    app.state.screen.close()
    app.state.inference_pool.shutdown()
    app.state.model_manager.shutdown()
    logger.info("HealthySnacks shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="HealthySnacks",
        description="Snack and healthy/unhealthy photo classification",
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

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run("healthysnacks.main:app", host=settings.host, port=settings.port)
