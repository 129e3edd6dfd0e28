"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from healthysnacks.api.middleware import require_api_key
from healthysnacks.api.schemas import (
    ClassifyImageResponse,
    DisplayResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    ResultLine,
)
from healthysnacks.ml.model_manager import MODEL_REGISTRY
from healthysnacks.ml.preprocessing import ImageDecodeError, NormalizationError

if TYPE_CHECKING:
    from healthysnacks.config import Settings
    from healthysnacks.ml.display import ResultScreen
    from healthysnacks.ml.inference import InferencePool
    from healthysnacks.ml.model_manager import ModelManager
    from healthysnacks.service import ClassificationService

router = APIRouter(prefix="/api/v1", dependencies=[Depends(require_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_screen(request: Request) -> ResultScreen:
    screen: ResultScreen = request.app.state.screen
    return screen


def _display_response(screen: ResultScreen) -> DisplayResponse:
    snapshot = screen.snapshot()
    return DisplayResponse(
        text=snapshot.text,
        visible=snapshot.visible,
        generation=snapshot.generation,
        pending=snapshot.pending,
    )


@router.post(
    "/classify",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
    },
    summary="Classify a snack photo",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse:
    """Run the snack and health classifiers on an uploaded photo."""
    settings = _get_settings(request)
    service: ClassificationService = request.app.state.classification_service

    image_bytes = await file.read()
    if len(image_bytes) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    try:
        report = await service.classify(image_bytes)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except NormalizationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return ClassifyImageResponse(
        generation=report.generation,
        text=report.text,
        lines=[ResultLine(classifier=line.classifier, kind=line.kind, text=line.text) for line in report.lines],
    )


@router.get(
    "/results",
    response_model=DisplayResponse,
    summary="Current result screen",
)
async def get_results(request: Request) -> DisplayResponse:
    """Return the text and visibility of the result screen."""
    return _display_response(_get_screen(request))


@router.post(
    "/results/hide",
    response_model=DisplayResponse,
    summary="Hide the result screen",
)
async def hide_results(request: Request) -> DisplayResponse:
    """Hide the results while the user picks the next photo."""
    screen = _get_screen(request)
    screen.hide()
    return _display_response(screen)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    model_manager: ModelManager = request.app.state.model_manager
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=model_manager.get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return registered classifiers and whether they are in use."""
    settings = _get_settings(request)
    active_models = {settings.snack_model, settings.health_model}

    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                task=spec.task,
                status="active" if spec.name in active_models else "available",
                license=spec.license,
                labels=list(spec.labels),
            )
            for spec in MODEL_REGISTRY.values()
        ]
    )
