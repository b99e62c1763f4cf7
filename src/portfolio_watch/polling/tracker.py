"""Pending subtasks, expected total and derived progress for one job."""

from __future__ import annotations

from collections.abc import Iterable


class CompletionTracker:
    """Owns the pending/total/progress triple of one polled job.

    Progress never decreases within one job. A server-reported total replaces
    the locally assumed one for this and every later computation, and the
    server's completed count acts as a floor for the local one.
    """

    def __init__(self, enumeration: Iterable[str] = ()) -> None:
        self._pending: frozenset[str] = frozenset()
        self._total = 0
        self._server_completed: int | None = None
        self._progress = 0
        self.seed(enumeration)

    @property
    def pending(self) -> frozenset[str]:
        return self._pending

    @property
    def total(self) -> int:
        return self._total

    @property
    def progress(self) -> int:
        return self._progress

    def seed(self, enumeration: Iterable[str]) -> None:
        """Start a new job: everything in ``enumeration`` is outstanding."""

        self._pending = frozenset(enumeration)
        self._total = len(self._pending)
        self._server_completed = None
        self._progress = 0

    def remove_completed(self, names: Iterable[str]) -> None:
        self._pending = self._pending.difference(names)
        self._recompute()

    def override_total(self, total: int | None, completed: int | None) -> bool:
        """Adopt server-reported totals; ignored unless both values are usable."""

        if total is None or total <= 0 or completed is None or completed < 0:
            return False
        self._total = total
        self._server_completed = completed
        self._publish(_percent(completed, total))
        return True

    def is_complete(self) -> bool:
        return not self._pending

    def force_complete(self) -> None:
        """Treat the job as finished regardless of what is still pending."""

        self._pending = frozenset()
        self._progress = 100

    def _recompute(self) -> None:
        completed = max(self._total - len(self._pending), 0)
        if self._server_completed is not None:
            completed = max(completed, self._server_completed)
        self._publish(_percent(completed, self._total))

    def _publish(self, value: int) -> None:
        self._progress = max(self._progress, min(100, max(0, value)))


def _percent(completed: int, total: int) -> int:
    # Integer half-up rounding.
    if total <= 0:
        return 0
    return (completed * 200 + total) // (2 * total)
