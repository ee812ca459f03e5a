"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, UploadFile, status
from fastapi.responses import JSONResponse

from visionexplorer.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    PredictionOut,
    StateResponse,
)
from visionexplorer.ml.model_manager import MODEL_REGISTRY

if TYPE_CHECKING:
    from visionexplorer.config import Settings
    from visionexplorer.ml.inference import InferencePool
    from visionexplorer.ml.runtime import Prediction
    from visionexplorer.ui.controller import VisionController

router = APIRouter(prefix="/api/v1")


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_controller(request: Request) -> VisionController:
    controller: VisionController = request.app.state.controller
    return controller


def _to_out(predictions: list[Prediction]) -> list[PredictionOut]:
    return [PredictionOut(label=p.label, probability=p.probability) for p in predictions]


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse | JSONResponse:
    """Classify an uploaded image and return the top-k labels."""
    controller = _get_controller(request)
    model = controller.state.model
    if model is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Model is not loaded"},
        )

    outcome = await controller.upload(await file.read(), file.content_type, file.filename)
    if outcome.predictions is None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": outcome.error or "Image could not be classified"},
        )
    return ClassifyImageResponse(model=model.model_name, predictions=_to_out(outcome.predictions))


@router.get(
    "/state",
    response_model=StateResponse,
    summary="Current page state",
)
async def get_state(request: Request) -> StateResponse:
    """Return model progress, the current image flag and the latest predictions."""
    state = _get_controller(request).state
    return StateResponse(
        model_ready=state.model_ready,
        model=state.model.model_name if state.model is not None else None,
        loading=state.loading,
        progress=state.progress,
        has_image=state.image is not None,
        predictions=_to_out(state.predictions),
        error=state.model_error or state.last_error,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    state = _get_controller(request).state
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        model_ready=state.model_ready,
        models_loaded=[state.model.model_name] if state.model is not None else [],
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the MobileNet variants and which one is configured."""
    settings = _get_settings(request)

    models: list[ModelInfo] = []
    for spec in MODEL_REGISTRY.values():
        active = spec.version == settings.model_version and spec.alpha == settings.model_alpha
        models.append(
            ModelInfo(
                name=spec.name,
                version=spec.version,
                alpha=spec.alpha,
                input_size=spec.input_size,
                status="active" if active else "available",
                license=spec.license,
            )
        )

    return ModelsResponse(models=models)
