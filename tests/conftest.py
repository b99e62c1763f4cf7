"""Shared test fixtures."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from portfolio_watch.polling.models import Cursor, PollResponse


class ScriptedResultSource:
    """Result source replaying a fixed script of responses and failures.

    Running out of script raises, so a loop that polls more often than a
    test expects ends in the error state instead of spinning.
    """

    def __init__(self, steps: list[PollResponse | BaseException]) -> None:
        self._steps = list(steps)
        self.calls: list[tuple[str, Cursor | None]] = []
        self.closed = False

    def fetch_results(self, job_id: str, cursor: Cursor | None = None) -> PollResponse:
        self.calls.append((job_id, cursor))
        if not self._steps:
            raise RuntimeError("result script exhausted")
        step = self._steps.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step

    def close(self) -> None:
        self.closed = True


class BlockingResultSource:
    """Result source whose first query for ``blocked_job`` waits for ``release``."""

    def __init__(self, blocked_job: str, blocked_response: PollResponse) -> None:
        self.blocked_job = blocked_job
        self.blocked_response = blocked_response
        self.responses: dict[str, list[PollResponse]] = {}
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls: list[tuple[str, Cursor | None]] = []

    def fetch_results(self, job_id: str, cursor: Cursor | None = None) -> PollResponse:
        self.calls.append((job_id, cursor))
        if job_id == self.blocked_job and not self.entered.is_set():
            self.entered.set()
            if not self.release.wait(timeout=5):
                raise TimeoutError("test never released the blocked query")
            return self.blocked_response
        queued = self.responses.get(job_id)
        if not queued:
            raise RuntimeError(f"no scripted response for {job_id}")
        return queued.pop(0)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += timedelta(seconds=seconds)


@pytest.fixture()
def scripted_source() -> Callable[[list[PollResponse | BaseException]], ScriptedResultSource]:
    """Factory for result sources that replay a script."""

    return ScriptedResultSource


@pytest.fixture()
def blocking_source() -> Callable[[str, PollResponse], BlockingResultSource]:
    """Factory for result sources whose first query waits for the test."""

    return BlockingResultSource


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def recorded_delays() -> list[float]:
    """Sleep replacement for pollers: records each pause instead of waiting."""

    return []


@pytest.fixture(autouse=True)
def _clean_portfolio_watch_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "PORTFOLIO_WATCH_API_BASE_URL",
        "PORTFOLIO_WATCH_API_TOKEN",
        "PORTFOLIO_WATCH_REQUEST_TIMEOUT_SECONDS",
        "PORTFOLIO_WATCH_CONNECT_TIMEOUT_SECONDS",
        "PORTFOLIO_WATCH_POLL_AGGRESSIVE_MS",
        "PORTFOLIO_WATCH_POLL_MODERATE_MS",
        "PORTFOLIO_WATCH_POLL_GENTLE_MS",
        "PORTFOLIO_WATCH_POLL_BASE_MS",
        "PORTFOLIO_WATCH_POLL_GROWTH_FACTOR",
        "PORTFOLIO_WATCH_POLL_MAX_MS",
        "PORTFOLIO_WATCH_POLL_WAKING_THRESHOLD_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
