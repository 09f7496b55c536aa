"""Wall-clock helpers for the per-step time budget."""

from __future__ import annotations

import time

from loguru import logger


class Stopwatch:
    """Context manager that logs how long a phase took, in milliseconds."""

    def __init__(self, label: str) -> None:
        self.label = label
        self.elapsed_ms = 0.0
        self._t0 = 0.0

    def __enter__(self) -> Stopwatch:
        self._t0 = time.monotonic()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.elapsed_ms = (time.monotonic() - self._t0) * 1000
        logger.debug(f"{self.label}: {self.elapsed_ms:.1f} ms")


class StepClock:
    """Elapsed time since the start of one resolution pass."""

    def __init__(self, budget_s: float) -> None:
        self.budget_s = budget_s
        self._t0 = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._t0

    @property
    def over_budget(self) -> bool:
        return self.elapsed > self.budget_s
