"""Pydantic request/response schemas for the HealthySnacks API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ResultLine(BaseModel):
    """One classifier's contribution to the display text."""

    classifier: str
    kind: str = Field(description="One of 'confident', 'hedged', 'empty', 'error', 'unrecognized'")
    text: str


class ClassifyImageResponse(BaseModel):
    """Response for the classification endpoint."""

    generation: int
    text: str
    lines: list[ResultLine]


class DisplayResponse(BaseModel):
    """Current state of the result screen."""

    text: str
    visible: bool
    generation: int
    pending: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = Field(description="Model task: 'snack_classification' or 'health_classification'")
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str
    labels: list[str]


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
