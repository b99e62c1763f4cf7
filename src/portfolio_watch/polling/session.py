"""Session lifecycle: one cancellable polling loop per analysis run.

Every started run owns a fresh ``JobContext``; nothing about a run lives
outside it. The loop runs in a daemon thread and suspends only between
queries, on the context's ``CancelToken``. A response is applied only while
its context is still the poller's current one and its token is not
cancelled, so results of a superseded or detached run are never merged.
Snapshots pushed to ``on_update`` are numbered when taken and an older one
is never delivered after a newer one.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from portfolio_watch.config import PollingSettings
from portfolio_watch.polling.backoff import BackoffPolicy
from portfolio_watch.polling.connection import ConnectionStateMachine
from portfolio_watch.polling.merger import MergeOutcome, merge_results
from portfolio_watch.polling.models import (
    ANALYSIS_SUBTASKS,
    EMPTY_SNAPSHOT,
    Cursor,
    PollingRecommendation,
    PollingSnapshot,
    PollResponse,
    ResultSource,
    utc_now,
)
from portfolio_watch.polling.tracker import CompletionTracker

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[PollingSnapshot], None]


class CancelToken:
    """Cooperative cancellation flag that doubles as the loop's sleep."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""

        return self._event.wait(timeout=max(seconds, 0.0))


@dataclass(slots=True)
class JobContext:
    """All mutable state of one polled analysis run."""

    job_id: str
    token: CancelToken
    tracker: CompletionTracker
    connection: ConnectionStateMachine
    results: dict[str, Any] = field(default_factory=dict)
    cursor: Cursor | None = None
    empty_polls: int = 0
    error: BaseException | None = None


def advance_cursor(current: Cursor | None, candidate: Cursor | None) -> Cursor | None:
    """Move the watermark forward, never backward."""

    if candidate is None:
        return current
    if current is None:
        return candidate
    try:
        if candidate < current:  # type: ignore[operator]
            return current
    except TypeError:
        pass
    return candidate


class AnalysisPoller:
    """Polls a result source for one analysis run at a time."""

    def __init__(  # noqa: PLR0913
        self,
        source: ResultSource,
        *,
        policy: BackoffPolicy | None = None,
        subtasks: Iterable[str] = ANALYSIS_SUBTASKS,
        waking_threshold_seconds: float = 3.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] | None = None,
        on_update: SnapshotListener | None = None,
    ) -> None:
        self._source = source
        self._policy = policy or BackoffPolicy()
        self._subtasks = tuple(subtasks)
        self._waking_threshold_seconds = waking_threshold_seconds
        self._clock = clock
        self._sleep = sleep
        self._on_update = on_update
        self._lock = threading.Lock()
        self._context: JobContext | None = None
        self._thread: threading.Thread | None = None
        # Snapshots are numbered under _lock and delivered in that order only.
        self._notify_lock = threading.RLock()
        self._sequence = 0
        self._delivered = 0

    @classmethod
    def from_settings(
        cls,
        source: ResultSource,
        settings: PollingSettings,
        **kwargs: Any,
    ) -> AnalysisPoller:
        return cls(
            source,
            policy=BackoffPolicy.from_settings(settings),
            waking_threshold_seconds=settings.waking_threshold_seconds,
            **kwargs,
        )

    # -- lifecycle -------------------------------------------------------------

    def start(self, job_id: str) -> None:
        """Begin polling ``job_id``, cancelling whatever run was active before.

        Restarting the run that is already being polled is a no-op; restarting
        a finished, failed or stopped run resets it and polls again.
        """

        if not job_id:
            self.stop()
            return

        with self._lock:
            current = self._context
            if current is not None and current.job_id == job_id and not current.token.cancelled:
                return
            if current is not None:
                self._deactivate(current)
            context = self._new_context(job_id)
            self._context = context
            self._thread = threading.Thread(
                target=self._run,
                args=(context,),
                daemon=True,
                name=f"analysis-poller-{job_id}",
            )
            # The loop takes the lock before its first query, so the reset
            # above is complete before anything is dispatched.
            self._thread.start()
            published = self._publish(context)
        logger.info("Polling started for analysis run %s", job_id)
        self._notify(*published)

    def stop(self) -> None:
        """Cancel the active run; later responses for it are discarded."""

        with self._lock:
            context = self._context
            if context is None or context.token.cancelled:
                return
            self._deactivate(context)
        logger.info("Polling stopped for analysis run %s", context.job_id)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the current loop exits; return False on timeout."""

        with self._lock:
            thread = self._thread
        if thread is None:
            return True
        thread.join(timeout=timeout)
        return not thread.is_alive()

    def snapshot(self) -> PollingSnapshot:
        """Current read model; a cold start noticed here is also pushed to ``on_update``."""

        published: tuple[int, PollingSnapshot] | None = None
        with self._lock:
            context = self._context
            if context is None:
                return EMPTY_SNAPSHOT
            if not context.token.cancelled:
                published = self._refresh(context)
            snapshot = self._snapshot_of(context)
        if published is not None:
            self._notify(*published)
        return snapshot

    # -- loop ------------------------------------------------------------------

    def _run(self, context: JobContext) -> None:
        try:
            self._poll_loop(context)
        except Exception as error:
            logger.exception("Polling loop crashed for analysis run %s", context.job_id)
            self._fail(context, error)

    def _poll_loop(self, context: JobContext) -> None:
        while True:
            with self._lock:
                if not self._is_current(context):
                    return
                waking = self._refresh(context)
                cursor = context.cursor
            if waking is not None:
                self._notify(*waking)

            try:
                response = self._source.fetch_results(context.job_id, cursor)
            except Exception as error:  # noqa: BLE001
                self._fail(context, error)
                return

            delay_ms: float | None = None
            with self._lock:
                if not self._is_current(context):
                    logger.debug("Discarding stale response for analysis run %s", context.job_id)
                    return
                self._apply(context, response)
                recommendation = response.scheduling.recommendation
                stop_requested = recommendation is PollingRecommendation.STOP
                if not stop_requested:
                    if context.tracker.is_complete():
                        self._deactivate(context)
                    else:
                        delay_ms = self._policy.next_delay_ms(recommendation, context.empty_polls)
                published = self._publish(context)
            self._notify(*published)

            if stop_requested:
                self._final_check(context)
                return
            if delay_ms is None:
                logger.info("All subtasks delivered for analysis run %s", context.job_id)
                return
            logger.debug(
                "Next poll for analysis run %s in %.0f ms (empty_polls=%d)",
                context.job_id,
                delay_ms,
                context.empty_polls,
            )
            if self._pause(context.token, delay_ms / 1000.0):
                return

    def _final_check(self, context: JobContext) -> None:
        """One last query after the server said stop, then complete the run."""

        with self._lock:
            if not self._is_current(context):
                return
            cursor = context.cursor

        response: PollResponse | None
        try:
            response = self._source.fetch_results(context.job_id, cursor)
        except Exception as error:  # noqa: BLE001
            logger.warning(
                "Final result check failed for analysis run %s: %s",
                context.job_id,
                error,
            )
            response = None

        with self._lock:
            if not self._is_current(context):
                logger.debug("Discarding stale final response for analysis run %s", context.job_id)
                return
            if response is not None:
                self._apply(context, response)
            context.tracker.force_complete()
            self._deactivate(context)
            published = self._publish(context)
        logger.info("Server finished analysis run %s", context.job_id)
        self._notify(*published)

    def _apply(self, context: JobContext, response: PollResponse) -> MergeOutcome:
        context.connection.mark_connected()
        context.cursor = advance_cursor(context.cursor, response.next_cursor)

        outcome = merge_results(context.results, context.tracker.pending, response.new_results)
        context.results = outcome.results
        context.tracker.remove_completed(outcome.merged)
        context.empty_polls = 0 if outcome.had_new_data else context.empty_polls + 1

        scheduling = response.scheduling
        if scheduling.has_totals:
            context.tracker.override_total(
                scheduling.total_subtasks,
                scheduling.completed_subtasks,
            )
        if response.undecodable:
            logger.warning(
                "Subtasks left pending after decode failure for analysis run %s: %s",
                context.job_id,
                ", ".join(response.undecodable),
            )
        if outcome.merged:
            logger.debug(
                "Merged %s for analysis run %s (progress=%d%%)",
                ", ".join(outcome.merged),
                context.job_id,
                context.tracker.progress,
            )
        return outcome

    def _fail(self, context: JobContext, error: BaseException) -> None:
        with self._lock:
            if not self._is_current(context):
                logger.debug("Ignoring failure of superseded analysis run %s", context.job_id)
                return
            context.error = error
            context.connection.mark_error()
            context.token.cancel()
            published = self._publish(context)
        logger.warning("Polling failed for analysis run %s: %s", context.job_id, error)
        self._notify(*published)

    def _pause(self, token: CancelToken, seconds: float) -> bool:
        if self._sleep is None:
            return token.wait(seconds)
        self._sleep(seconds)
        return token.cancelled

    # -- helpers ---------------------------------------------------------------

    def _new_context(self, job_id: str) -> JobContext:
        connection = ConnectionStateMachine(
            waking_threshold_seconds=self._waking_threshold_seconds,
        )
        connection.begin(self._clock())
        return JobContext(
            job_id=job_id,
            token=CancelToken(),
            tracker=CompletionTracker(self._subtasks),
            connection=connection,
        )

    def _is_current(self, context: JobContext) -> bool:
        return self._context is context and not context.token.cancelled

    @staticmethod
    def _deactivate(context: JobContext) -> None:
        context.token.cancel()
        context.connection.finish()

    @staticmethod
    def _snapshot_of(context: JobContext) -> PollingSnapshot:
        return PollingSnapshot(
            job_id=context.job_id,
            results=dict(context.results),
            pending=context.tracker.pending,
            progress=context.tracker.progress,
            connection_state=context.connection.state,
            loading_started_at=context.connection.started_at,
            error=context.error,
            cursor=context.cursor,
            empty_polls=context.empty_polls,
        )

    def _refresh(self, context: JobContext) -> tuple[int, PollingSnapshot] | None:
        before = context.connection.state
        if context.connection.refresh(self._clock()) is before:
            return None
        return self._publish(context)

    def _publish(self, context: JobContext) -> tuple[int, PollingSnapshot]:
        """Number a snapshot of ``context``; call with ``_lock`` held."""

        self._sequence += 1
        return self._sequence, self._snapshot_of(context)

    def _notify(self, sequence: int, snapshot: PollingSnapshot) -> None:
        if self._on_update is None:
            return
        with self._notify_lock:
            if sequence <= self._delivered:
                logger.debug("Dropping superseded snapshot %d for %s", sequence, snapshot.job_id)
                return
            self._delivered = sequence
            self._on_update(snapshot)
