from __future__ import annotations
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Load .env file from project root (parent of bgremoval/core)
    _env_file_path = Path(__file__).parent.parent.parent / ".env"

    model_config = SettingsConfigDict(
        env_file=str(_env_file_path) if _env_file_path.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    app_name: str = Field(default="Background Removal API", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, alias="LOG_FILE")
    log_rotation: str = Field(default="10 MB", alias="LOG_ROTATION")
    port: int = Field(default=3000, ge=1, le=65535, alias="PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    # Default color-matching tolerance (Euclidean RGB distance, 0 = exact match)
    tolerance: int = Field(default=0, ge=0, le=255, alias="TOLERANCE")

    # Upload limits
    max_file_size_mb: int = Field(default=10, gt=0, alias="MAX_FILE_SIZE_MB")
    max_image_dimension: int = Field(default=65535, gt=0, alias="MAX_IMAGE_DIMENSION")
    min_crop_regions: int = Field(default=1, ge=0, alias="MIN_CROP_REGIONS")
    max_crop_regions: int = Field(default=20, gt=0, alias="MAX_CROP_REGIONS")
    max_detect_objects: int = Field(default=25, gt=0, alias="MAX_DETECT_OBJECTS")

    # Raster encoding / cropping
    png_compression_level: int = Field(default=9, ge=0, le=9, alias="PNG_COMPRESSION_LEVEL")
    crop_max_workers: int | None = Field(default=None, gt=0, alias="CROP_MAX_WORKERS")

    # Gemini (bounding-box detection + object isolation)
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    gemini_image_model: str = Field(default="gemini-2.5-flash-image", alias="GEMINI_IMAGE_MODEL")
    gemini_timeout_ms: int = Field(default=60000, gt=0, alias="GEMINI_TIMEOUT_MS")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_BASE_URL",
    )

    # Replicate (SAM 2 automatic segmentation)
    replicate_api_token: str | None = Field(default=None, alias="REPLICATE_API_TOKEN")
    replicate_base_url: str = Field(default="https://api.replicate.com/v1", alias="REPLICATE_BASE_URL")
    replicate_sam2_version: str = Field(
        default="fe97b453a6455861e3bac769b441ca1f1086110da7466dbb65cf1eecfd60dc83",
        alias="REPLICATE_SAM2_VERSION",
    )
    replicate_max_retries: int = Field(default=3, ge=1, alias="REPLICATE_MAX_RETRIES")
    replicate_initial_backoff_seconds: float = Field(
        default=1.0, ge=0, alias="REPLICATE_INITIAL_BACKOFF_SECONDS"
    )
    replicate_max_wait_seconds: int = Field(default=120, gt=0, alias="REPLICATE_MAX_WAIT_SECONDS")

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"development", "production", "test"}:
            raise ValueError("APP_ENV must be one of development|production|test")
        return v

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
