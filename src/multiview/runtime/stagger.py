"""Staggered start schedule.

``delay(index) = seed + index * spacing`` spreads the initial manifest
fetches of a freshly composed grid over time. The seed is drawn once per
session; the spacing between consecutive tiles is constant whatever the seed.
Only initial attaches are staggered; recovery reattachment is immediate.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

DEFAULT_SPACING_MS = 300
DEFAULT_SEED_MAX_MS = 1000


@dataclass(frozen=True)
class StaggerSchedule:
    seed_ms: int = 0
    spacing_ms: int = DEFAULT_SPACING_MS

    def __post_init__(self) -> None:
        if self.seed_ms < 0:
            raise ValueError("seed_ms must be non-negative")
        if self.spacing_ms < 0:
            raise ValueError("spacing_ms must be non-negative")

    @classmethod
    def random(
        cls,
        spacing_ms: int = DEFAULT_SPACING_MS,
        seed_max_ms: int = DEFAULT_SEED_MAX_MS,
        rng: random.Random | None = None,
    ) -> StaggerSchedule:
        """Draw a per-session seed in ``[0, seed_max_ms)``."""
        rng = rng or random.Random()
        seed = rng.randrange(seed_max_ms) if seed_max_ms > 0 else 0
        return cls(seed_ms=seed, spacing_ms=spacing_ms)

    def delay_ms(self, index: int) -> int:
        if index < 0:
            raise ValueError("index must be non-negative")
        return self.seed_ms + index * self.spacing_ms

    def delay(self, index: int) -> float:
        """Delay in seconds before tile ``index`` first attaches."""
        return self.delay_ms(index) / 1000.0

    def table(self, count: int) -> list[int]:
        return [self.delay_ms(index) for index in range(count)]
