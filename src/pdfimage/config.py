"""Environment-based configuration for pdfimage."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Importer settings loaded from PDFIMAGE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PDFIMAGE_",
        case_sensitive=False,
    )

    # Encoding
    default_quality: int = Field(default=100, ge=0, le=100)
    matte_color: str = "#000000"

    # Input limits
    max_image_pixels: int = Field(default=89_478_485, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)

    # Remote sources
    fetch_timeout: float = Field(default=10.0, gt=0)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)


def get_settings() -> Settings:
    """Create and return importer settings."""
    return Settings()
