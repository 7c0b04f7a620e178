from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from seekback.storage.filetypes import (
    DEFAULT_MEDIA_TYPES,
    SUMMARY_EXT,
    TRANSCRIPT_EXT,
    MediaTypeRegistry,
    normalize_ext,
)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    samples_path: Path = Field(default_factory=lambda: Path.cwd() / "samples")
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".seekback")
    db_filename: str = "seekback.db"
    ffprobe_path: Path | None = None

    watch_interval_s: float = Field(default=30.0, gt=0)
    progress_interval_s: float = Field(default=5.0, ge=0)

    media_types: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MEDIA_TYPES))
    summary_ext: str = SUMMARY_EXT
    transcript_ext: str = TRANSCRIPT_EXT

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="SEEKBACK_", extra="ignore")

    @field_validator("media_types")
    @classmethod
    def _normalize_media_types(cls, value: dict[str, str]) -> dict[str, str]:
        normalized = {normalize_ext(ext): ctype for ext, ctype in value.items() if normalize_ext(ext)}
        if not normalized:
            raise ValueError("At least one media type is required.")
        return normalized

    @field_validator("summary_ext", "transcript_ext")
    @classmethod
    def _normalize_sidecar_ext(cls, value: str) -> str:
        ext = normalize_ext(value)
        if not ext:
            raise ValueError("Sidecar extension must not be empty.")
        return ext

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unsupported log level '{value}'. Allowed: {', '.join(LOG_LEVELS)}")
        return level

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def media_registry(self) -> MediaTypeRegistry:
        return MediaTypeRegistry(
            media_types=self.media_types,
            summary_ext=self.summary_ext,
            transcript_ext=self.transcript_ext,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
