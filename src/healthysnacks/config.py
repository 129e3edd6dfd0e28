"""Environment-based configuration for HealthySnacks."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from HEALTHYSNACKS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HEALTHYSNACKS_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    snack_model: str = "snacks_classifier"
    health_model: str = "health_classifier"
    models_dir: str = "models"
    # HuggingFace repo holding the exported .onnx files; overrides the registry default
    models_repo: str | None = None

    # Classification
    target_size: int = Field(default=299, ge=1)
    confidence_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    top_k: int = Field(default=5, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency (two classifiers run per image)
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)

    # Model management
    model_ttl: int = Field(default=300, ge=0)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
