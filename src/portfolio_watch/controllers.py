"""Controllers for polling CLI commands."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from portfolio_watch.config import ApiSettings, Settings
from portfolio_watch.http.client import (
    AnalysisApiClient,
    QueryFailureKind,
    ResultQueryError,
)
from portfolio_watch.polling import (
    ANALYSIS_SUBTASKS,
    AnalysisPoller,
    ConnectionState,
    PollingSnapshot,
)

ClientFactory = Callable[[ApiSettings], AnalysisApiClient]
LineSink = Callable[[str], None]


@dataclass(slots=True)
class WatchCommand:
    """CLI input for watching one analysis run."""

    run_id: str
    timeout_seconds: float | None = None


@dataclass(slots=True)
class AnalyzeCommand:
    """CLI input for submitting a portfolio."""

    holdings: tuple[tuple[str, float], ...]
    portfolio_name: str
    version_name: str
    watch: bool
    timeout_seconds: float | None = None


@dataclass(slots=True)
class PollingCliResult:
    """Report to render in CLI."""

    lines: list[str]
    success: bool


class PollingCliController:
    """Coordinates analysis submission and result polling for the CLI."""

    def __init__(
        self,
        *,
        client_factory: ClientFactory = AnalysisApiClient.from_settings,
        sleep: Callable[[float], None] | None = None,
        refresh_interval_seconds: float = 0.5,
    ) -> None:
        self.client_factory = client_factory
        self.sleep = sleep
        self.refresh_interval_seconds = refresh_interval_seconds

    def watch(self, command: WatchCommand, on_line: LineSink | None = None) -> PollingCliResult:
        settings = _load_settings()
        lines: list[str] = []
        reporter = _ProgressReporter(on_line or lines.append)
        with _api_client(self.client_factory, settings) as client:
            poller = AnalysisPoller.from_settings(
                client,
                settings.polling,
                sleep=self.sleep,
                on_update=reporter,
            )
            poller.start(command.run_id)
            timed_out = self._wait_until_done(poller, command.timeout_seconds)
            snapshot = poller.snapshot()

        lines.extend(_summary_lines(snapshot))
        if timed_out:
            lines.append(f"Stopped watching after {command.timeout_seconds:g}s.")
        success = snapshot.error is None and not timed_out
        return PollingCliResult(lines=lines, success=success)

    def analyze(self, command: AnalyzeCommand, on_line: LineSink | None = None) -> PollingCliResult:
        settings = _load_settings()
        with _api_client(self.client_factory, settings) as client:
            try:
                run_id = client.start_analysis(
                    command.holdings,
                    portfolio_name=command.portfolio_name,
                    version_name=command.version_name,
                )
            except ResultQueryError as error:
                return PollingCliResult(lines=_error_lines(error), success=False)

        lines = [f"analysis_run_id={run_id}"]
        if not command.watch:
            return PollingCliResult(lines=lines, success=True)
        if on_line is not None:
            for line in lines:
                on_line(line)
            lines = []
        watched = self.watch(
            WatchCommand(run_id=run_id, timeout_seconds=command.timeout_seconds),
            on_line=on_line,
        )
        return PollingCliResult(lines=lines + watched.lines, success=watched.success)

    def subtasks(self) -> list[str]:
        return list(ANALYSIS_SUBTASKS)

    def _wait_until_done(
        self,
        poller: AnalysisPoller,
        timeout_seconds: float | None,
    ) -> bool:
        deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds
        while not poller.wait(timeout=self.refresh_interval_seconds):
            # Reading a snapshot is what surfaces the cold-start "waking" state.
            poller.snapshot()
            if deadline is not None and time.monotonic() >= deadline:
                poller.stop()
                return True
        return False


class _ProgressReporter:
    """Turns snapshots into one line per new subtask or connection change."""

    def __init__(self, emit: LineSink) -> None:
        self._emit = emit
        self._lock = threading.Lock()
        self._seen: set[str] = set()
        self._state: ConnectionState | None = None

    def __call__(self, snapshot: PollingSnapshot) -> None:
        with self._lock:
            if snapshot.connection_state is not self._state:
                self._state = snapshot.connection_state
                if snapshot.connection_state in {
                    ConnectionState.WAKING,
                    ConnectionState.CONNECTED,
                    ConnectionState.ERROR,
                }:
                    self._emit(f"connection={snapshot.connection_state.value}")
            for name in snapshot.results:
                if name in self._seen:
                    continue
                self._seen.add(name)
                self._emit(f"[{snapshot.progress:>3}%] {name}")


def _summary_lines(snapshot: PollingSnapshot) -> list[str]:
    lines = [
        f"analysis_run_id={snapshot.job_id} "
        f"completed={len(snapshot.results)} pending={len(snapshot.pending)} "
        f"progress={snapshot.progress}% state={snapshot.connection_state.value}",
    ]
    if snapshot.pending:
        lines.append(f"pending_subtasks={','.join(sorted(snapshot.pending))}")
    if snapshot.error is not None:
        lines.extend(_error_lines(snapshot.error))
    return lines


def _error_lines(error: BaseException) -> list[str]:
    lines = [f"error={error}"]
    if isinstance(error, ResultQueryError) and error.kind is QueryFailureKind.UNAUTHORIZED:
        lines.append("Set PORTFOLIO_WATCH_API_TOKEN to a valid token and retry.")
    elif isinstance(error, ResultQueryError) and error.transient:
        lines.append("The analysis server may be temporarily unavailable; retry later.")
    return lines


def _load_settings() -> Settings:
    settings = Settings.from_env()
    settings.validate()
    return settings


@contextmanager
def _api_client(factory: ClientFactory, settings: Settings) -> Iterator[AnalysisApiClient]:
    client = factory(settings.api)
    try:
        yield client
    finally:
        client.close()
