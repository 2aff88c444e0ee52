# src/config/settings.py
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: storage backend,
cache TTLs, retry and timeout defaults, batch sizing and logging. The
operator-tunable values that change at runtime (rate limits, cache kill
switch) live in the scaling config document instead, see config/scaling.py.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Durable store ===
    store_backend: Literal["memory", "sqlite", "redis"] = "memory"
    store_sqlite_path: Path = Path("~/.sitelift/store.db")
    store_redis_url: str = ""
    store_key_prefix: str = "sitelift:"

    # === Result cache ===
    cache_ttl_scrape_result_s: int = 7 * 24 * 3600
    cache_ttl_vision_text_s: int = 24 * 3600
    cache_ttl_vision_color_s: int = 24 * 3600
    cache_ttl_vision_caption_s: int = 24 * 3600
    # 0 re-reads the kill switch on every cache call
    cache_flag_max_age_s: float = 0.0

    # === Scaling config document ===
    scaling_config_key: str = "config:scaling"
    scaling_config_ttl_s: float = 60.0

    # === Retry ===
    retry_max_retries: int = 3
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 30.0

    # === Timeouts (per external call) ===
    timeout_generative_s: float = 30.0
    timeout_image_generation_s: float = 60.0
    timeout_scraping_s: float = 45.0
    timeout_vision_s: float = 30.0
    timeout_image_store_s: float = 30.0
    timeout_default_s: float = 30.0

    # === Batch ===
    vision_batch_concurrency: int = 3
    vision_batch_delay_s: float = 0.15
    vision_max_images: int = 15
    caption_batch_concurrency: int = 2
    caption_batch_delay_s: float = 0.2
    caption_max_images: int = 10
    vision_max_colors: int = 5

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "cache_ttl_scrape_result_s",
        "cache_ttl_vision_text_s",
        "cache_ttl_vision_color_s",
        "cache_ttl_vision_caption_s",
    )
    @classmethod
    def validate_cache_ttl(cls, v: int) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError("cache TTLs must be > 0")
        return v

    @field_validator(
        "vision_batch_concurrency", "caption_batch_concurrency",
        "vision_max_images", "caption_max_images",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("batch sizes and concurrency must be >= 1")
        return v

    @field_validator("retry_max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("retry_max_retries must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.store_backend == "redis" and not self.store_redis_url:
            errors.append("STORE_REDIS_URL must be set when STORE_BACKEND=redis")

        if self.retry_base_delay_s > self.retry_max_delay_s:
            errors.append("RETRY_BASE_DELAY_S must be <= RETRY_MAX_DELAY_S")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def cache_ttls(self) -> dict[str, int]:
        """TTL in seconds per cache namespace."""
        return {
            "scrape-result": self.cache_ttl_scrape_result_s,
            "vision-text": self.cache_ttl_vision_text_s,
            "vision-color": self.cache_ttl_vision_color_s,
            "vision-caption": self.cache_ttl_vision_caption_s,
        }


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or one-off runs).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
