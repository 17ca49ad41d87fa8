"""
Runtime configuration data structures.

Defines StreamDescriptor (one directory record), GridConfig (grid dimensions)
and SupervisorConfig, the frozen runtime view of the timing and threshold
settings every tile is built with.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from multiview.infra.exceptions import ValidationError
from multiview.infra.settings import Settings

MIN_GRID_SIDE = 1
MAX_GRID_SIDE = 10


@dataclass(frozen=True)
class StreamDescriptor:
    """A stream assigned to a grid slot."""

    id: str
    title: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamDescriptor:
        return cls(id=str(data["id"]), title=data["title"], url=data["url"])


@dataclass(frozen=True)
class GridConfig:
    rows: int = 6
    columns: int = 7

    def __post_init__(self) -> None:
        for name, value in (("rows", self.rows), ("columns", self.columns)):
            if not MIN_GRID_SIDE <= value <= MAX_GRID_SIDE:
                raise ValidationError(
                    f"{name} must be between {MIN_GRID_SIDE} and {MAX_GRID_SIDE}, got {value}"
                )

    @property
    def capacity(self) -> int:
        return self.rows * self.columns


@dataclass(frozen=True)
class SupervisorConfig:
    """Timing and threshold parameters shared by every tile."""

    debounce_timeout: float = 10.0
    recovery_interval: float = 5.0
    hard_reload_every: int = 3
    silence_threshold: float = 0.01
    silence_duration: float = 10.0
    analysis_hz: float = 30.0
    stagger_spacing_ms: int = 300
    stagger_seed_max_ms: int = 1000
    start_muted: bool = True

    def __post_init__(self) -> None:
        if self.debounce_timeout <= 0:
            raise ValidationError("debounce_timeout must be greater than zero")
        if self.recovery_interval <= 0:
            raise ValidationError("recovery_interval must be greater than zero")
        if self.hard_reload_every < 0:
            raise ValidationError("hard_reload_every must be non-negative")
        if not 0.0 < self.silence_threshold <= 1.0:
            raise ValidationError("silence_threshold must be within (0, 1]")
        if self.silence_duration < 0:
            raise ValidationError("silence_duration must be non-negative")
        if self.analysis_hz <= 0:
            raise ValidationError("analysis_hz must be greater than zero")

    @classmethod
    def from_settings(cls, settings: Settings) -> SupervisorConfig:
        return cls(
            debounce_timeout=settings.debounce_timeout_s,
            recovery_interval=settings.recovery_interval_s,
            hard_reload_every=settings.hard_reload_every,
            silence_threshold=settings.silence_threshold,
            silence_duration=settings.silence_duration_s,
            analysis_hz=settings.analysis_hz,
            stagger_spacing_ms=settings.stagger_spacing_ms,
            stagger_seed_max_ms=settings.stagger_seed_max_ms,
            start_muted=settings.start_muted,
        )
