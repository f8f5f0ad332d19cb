"""Environment-based configuration for FaceScan."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from FACESCAN_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACESCAN_",
        case_sensitive=False,
    )

    # Input
    image_dir: Path = Path("test_images")
    recursive: bool = True
    file_pattern: str = ".*"

    # Cascade model (cascade_path overrides the registry lookup)
    cascade_model: str = "frontalface_default"
    cascade_path: Path | None = None

    # Detection tuning
    scale_factor: float = Field(default=1.5, gt=1.0)
    min_neighbors: int = Field(default=3, ge=0)
    downscale_factor: int = Field(default=2, ge=1)
    canny_pruning: bool = True

    # Report rectangles in original image coordinates instead of the downscaled ones
    rescale_rectangles: bool = False

    # Concurrency (1 = sequential)
    max_workers: int = Field(default=1, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)

    # Process
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    fail_on_error: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
