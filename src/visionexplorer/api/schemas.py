"""Pydantic request/response schemas for the Vision Explorer API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PredictionOut(BaseModel):
    """A single classification label with its probability."""

    label: str
    probability: float = Field(ge=0.0, le=1.0)


class ClassifyImageResponse(BaseModel):
    """Response for the image classification endpoint."""

    model: str
    predictions: list[PredictionOut] = Field(description="At most top_k entries, highest probability first")


class StateResponse(BaseModel):
    """Snapshot of the page state."""

    model_config = ConfigDict(protected_namespaces=())

    model_ready: bool
    model: str | None
    loading: bool
    progress: int = Field(ge=0, le=100, description="Model load progress in percent")
    has_image: bool
    predictions: list[PredictionOut]
    error: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(protected_namespaces=())

    status: str = "ok"
    gpu: bool
    model_ready: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    version: int
    alpha: float
    input_size: int
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
