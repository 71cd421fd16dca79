"""Application Settings - Environment-based configuration.

Uses Pydantic Settings for validation and type coercion. Every variable is
read with the PERFORMER_ prefix (e.g. PERFORMER_EXPORT_DURATION_S=4).
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from performer.config.constants import ENGINE


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PERFORMER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=8090, ge=1024, le=65535, description="API port")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment name"
    )

    # Animation
    frame_rate: int = Field(
        default=ENGINE.FRAME_RATE, ge=10, le=240, description="Animation ticks per second"
    )
    viseme_sample_rate: int = Field(
        default=ENGINE.VISEME_SAMPLE_RATE,
        ge=10,
        le=240,
        description="Viseme timeline samples per second",
    )
    completion_buffer_s: float = Field(
        default=ENGINE.COMPLETION_BUFFER_S,
        ge=0.0,
        le=5.0,
        description="Trailing hold after a text timeline before the session completes",
    )
    default_script: str = Field(
        default=ENGINE.DEFAULT_SCRIPT,
        description="Line spoken when the script is empty",
    )
    max_script_chars: int = Field(
        default=ENGINE.MAX_SCRIPT_CHARS,
        ge=1,
        le=20000,
        description="Longest script accepted over HTTP",
    )

    # Export
    export_duration_s: float = Field(
        default=ENGINE.EXPORT_DURATION_MS / 1000,
        gt=0.0,
        le=120.0,
        description="Fixed capture window for exports",
    )
    capture_fps: int = Field(
        default=ENGINE.CAPTURE_FPS, ge=1, le=120, description="Surface capture frame rate"
    )
    capture_mime_type: str = Field(
        default=ENGINE.CAPTURE_MIME_TYPE, description="Recorder container/codec"
    )

    # Transcoding
    transcode_enabled: bool = Field(
        default=True, description="Re-encode captured clips to MP4 with ffmpeg"
    )
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg executable")
    transcode_timeout_s: float = Field(
        default=ENGINE.TRANSCODE_TIMEOUT_S,
        gt=0.0,
        description="Upper bound for a single transcode run",
    )

    # Observability
    metrics_enabled: bool = Field(default=True, description="Enable Prometheus metrics")

    @field_validator("default_script")
    @classmethod
    def validate_default_script(cls, v: str) -> str:
        """Default script must contain at least one word."""
        if not v.strip():
            raise ValueError("default_script must not be blank")
        return v.strip()

    @property
    def export_duration_ms(self) -> int:
        """Export window in milliseconds."""
        return int(self.export_duration_s * 1000)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
