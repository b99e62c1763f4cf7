"""Delay selection between consecutive result queries."""

from __future__ import annotations

from dataclasses import dataclass

from portfolio_watch.config import PollingSettings
from portfolio_watch.polling.models import PollingRecommendation


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Server-steered polling cadence with a bounded exponential fallback."""

    aggressive_delay_ms: int = 2_000
    moderate_delay_ms: int = 7_000
    gentle_delay_ms: int = 20_000
    base_delay_ms: int = 2_000
    growth_factor: float = 1.3
    max_delay_ms: int = 30_000

    @classmethod
    def from_settings(cls, settings: PollingSettings) -> BackoffPolicy:
        return cls(
            aggressive_delay_ms=settings.aggressive_delay_ms,
            moderate_delay_ms=settings.moderate_delay_ms,
            gentle_delay_ms=settings.gentle_delay_ms,
            base_delay_ms=settings.base_delay_ms,
            growth_factor=settings.growth_factor,
            max_delay_ms=settings.max_delay_ms,
        )

    def next_delay_ms(
        self,
        recommendation: PollingRecommendation | None,
        empty_polls: int,
    ) -> float:
        """Milliseconds to wait before the next query.

        ``STOP`` is not a cadence decision; the session handles it before
        asking for a delay, so here it falls through to the fallback curve.
        """

        if recommendation is PollingRecommendation.AGGRESSIVE:
            return float(self.aggressive_delay_ms)
        if recommendation is PollingRecommendation.MODERATE:
            return float(self.moderate_delay_ms)
        if recommendation is PollingRecommendation.GENTLE:
            return float(self.gentle_delay_ms)
        return self._fallback_delay_ms(max(empty_polls, 0))

    def _fallback_delay_ms(self, empty_polls: int) -> float:
        ceiling = float(self.max_delay_ms)
        try:
            delay = self.base_delay_ms * self.growth_factor**empty_polls
        except OverflowError:
            return ceiling
        return min(delay, ceiling)
