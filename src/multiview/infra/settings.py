"""
Application settings for Multiview.

This module defines all configuration settings for Multiview using Pydantic BaseSettings.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings using Pydantic BaseSettings."""

    # Health supervision
    debounce_timeout_s: float = Field(default=10.0, alias="DEBOUNCE_TIMEOUT_S")
    recovery_interval_s: float = Field(default=5.0, alias="RECOVERY_INTERVAL_S")
    hard_reload_every: int = Field(default=3, alias="HARD_RELOAD_EVERY")  # 0 disables hard reloads

    # Audio silence detection
    silence_threshold: float = Field(default=0.01, alias="SILENCE_THRESHOLD")
    silence_duration_s: float = Field(default=10.0, alias="SILENCE_DURATION_S")
    analysis_hz: float = Field(default=30.0, alias="ANALYSIS_HZ")

    # Grid composition
    stagger_spacing_ms: int = Field(default=300, alias="STAGGER_SPACING_MS")
    stagger_seed_max_ms: int = Field(default=1000, alias="STAGGER_SEED_MAX_MS")
    grid_rows: int = Field(default=6, alias="GRID_ROWS")
    grid_columns: int = Field(default=7, alias="GRID_COLUMNS")
    start_muted: bool = Field(default=True, alias="START_MUTED")

    # Alarms
    alarm_interval_s: float = Field(default=1.0, alias="ALARM_INTERVAL_S")
    alarm_bell: bool = Field(default=True, alias="ALARM_BELL")

    # Headless transport
    ffmpeg_path: str = Field(default="ffmpeg", alias="FFMPEG_PATH")
    audio_sample_rate: int = Field(default=8000, alias="AUDIO_SAMPLE_RATE")
    decoder_stall_timeout_s: float = Field(default=10.0, alias="DECODER_STALL_TIMEOUT_S")
    decoder_restart_min_interval_s: float = Field(default=1.0, alias="DECODER_RESTART_MIN_INTERVAL_S")

    # HTTP
    http_host: str = Field(default="127.0.0.1", alias="HTTP_HOST")
    http_port: int = Field(default=8000, alias="HTTP_PORT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    env: str = Field(default="dev", alias="ENV")  # dev|prod|test

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


def _resolve_env_file() -> str | None:
    # 1) Explicit override
    explicit = os.getenv("MULTIVIEW_ENV_FILE")
    if explicit and Path(explicit).is_file():
        return explicit

    # 2) CWD .env
    cwd_env = Path.cwd() / ".env"
    if cwd_env.is_file():
        return str(cwd_env)

    # 3) Walk up from this file to find nearest .env
    here = Path(__file__).resolve()
    for parent in here.parents:
        candidate = parent / ".env"
        if candidate.is_file():
            return str(candidate)
    return None


# Global settings instance (load from best-effort .env discovery)
_env_file = _resolve_env_file()
settings = Settings(_env_file=_env_file) if _env_file else Settings()  # type: ignore[call-arg]
