"""Environment-based configuration for Vision Explorer."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from VISIONEXPLORER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VISIONEXPLORER_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    model_version: int = Field(default=2, ge=1, le=2)
    model_alpha: float = Field(default=1.0, gt=0.0)
    top_k: int = Field(default=5, ge=1)
    models_dir: str = "models"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # UI
    show_errors: bool = True


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
