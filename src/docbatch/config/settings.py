"""docbatch settings.

Values come from init arguments, `DOCBATCH_*` environment variables, `.env`
and `docbatch.yaml`, in that order of precedence.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource

from docbatch.config.constants import (
    DEFAULT_ARCHIVE_BASE_NAME,
    DEFAULT_CONFIG_FILE,
    DEFAULT_CONVERSION_TIMEOUT,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_LIVENESS_INTERVAL,
    DEFAULT_LOG_DIR,
    DEFAULT_MAX_ARCHIVE_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_PREVIEW_WIDTH,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_STALL_TIMEOUT,
    OUTPUT_FORMATS,
)


class BatchConfig(BaseModel):
    """Batch orchestration configuration."""

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    stall_timeout: float = Field(default=DEFAULT_STALL_TIMEOUT, gt=0)
    heartbeat_interval: float = Field(default=DEFAULT_HEARTBEAT_INTERVAL, gt=0)
    retry_backoff: float = Field(default=DEFAULT_RETRY_BACKOFF, ge=0)
    default_output_format: str = DEFAULT_OUTPUT_FORMAT

    @field_validator("default_output_format")
    @classmethod
    def _check_output_format(cls, value: str) -> str:
        value = value.lower().lstrip(".")
        if value not in OUTPUT_FORMATS:
            raise ValueError(f"unknown output format: {value}")
        return value


class ArchiveConfig(BaseModel):
    """Archive packing configuration."""

    max_archive_size: int = Field(default=DEFAULT_MAX_ARCHIVE_SIZE, ge=1)  # bytes
    base_name: str = DEFAULT_ARCHIVE_BASE_NAME
    compression: Literal["deflate", "stored"] = "deflate"


class PreviewConfig(BaseModel):
    """Page preview configuration."""

    target_width: int = Field(default=DEFAULT_PREVIEW_WIDTH, ge=1)


class ConverterConfig(BaseModel):
    """LibreOffice converter configuration."""

    soffice_path: str | None = None
    timeout: int = Field(default=DEFAULT_CONVERSION_TIMEOUT, ge=1)
    liveness_interval: float = Field(default=DEFAULT_LIVENESS_INTERVAL, gt=0)


class DocbatchSettings(BaseSettings):
    """Main configuration class for docbatch."""

    model_config = SettingsConfigDict(
        env_prefix="DOCBATCH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Read `docbatch.yaml` below environment variables."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=DEFAULT_CONFIG_FILE),
            file_secret_settings,
        )

    # Sub-configurations
    batch: BatchConfig = Field(default_factory=BatchConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    preview: PreviewConfig = Field(default_factory=PreviewConfig)
    converter: ConverterConfig = Field(default_factory=ConverterConfig)

    # Global settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_dir: str = DEFAULT_LOG_DIR
    storage_dir: str | None = None  # None keeps converted bytes in memory


@lru_cache
def get_settings() -> DocbatchSettings:
    """Process-wide settings, read once."""
    return DocbatchSettings()


def reload_settings() -> DocbatchSettings:
    """Drop the cached settings and read them again."""
    get_settings.cache_clear()
    return get_settings()
