"""Environment-based configuration for FaceCrop."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MEGABYTE = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from FACECROP_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACECROP_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # Face detection
    face_detection_model: Literal["skin_tone", "retinaface_resnet34", "retinaface_mobilenetv2"] = "skin_tone"
    detection_threshold: float = Field(default=0.8, gt=0.0, lt=1.0)
    preload_models: bool = False

    # ML device (ONNX detectors only)
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=50_000_000, ge=1)
    max_upload_size: int = Field(default=5 * MEGABYTE, ge=1)

    # Pipeline
    analysis_max_size: int = Field(default=400, ge=1)
    compression_ceiling: int = Field(default=10 * MEGABYTE, ge=1)
    output_size_limit: int = Field(default=15 * MEGABYTE, ge=1)
    quality_floor: float = Field(default=0.3, gt=0.0, le=1.0)
    quality_step: float = Field(default=0.1, gt=0.0, le=1.0)
    max_reencodes: int = Field(default=5, ge=0)

    # Model management
    models_dir: str = "models"
    models_repo: str | None = None  # overrides the registry's HuggingFace repo
    model_ttl: int = Field(default=300, ge=0)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
