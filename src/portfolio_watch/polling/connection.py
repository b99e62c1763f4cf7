"""Connection state machine of one polled job."""

from __future__ import annotations

import logging
from datetime import datetime

from portfolio_watch.polling.models import ConnectionState

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.IDLE: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {
            ConnectionState.WAKING,
            ConnectionState.CONNECTED,
            ConnectionState.ERROR,
            ConnectionState.IDLE,
        },
    ),
    ConnectionState.WAKING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.ERROR, ConnectionState.IDLE},
    ),
    ConnectionState.CONNECTED: frozenset({ConnectionState.ERROR, ConnectionState.IDLE}),
    ConnectionState.ERROR: frozenset(),
}


class ConnectionStateMachine:
    """Tracks idle/connecting/waking/connected/error independently of completion.

    ``waking`` is decided by elapsed time only: while no response has succeeded
    and more than ``waking_threshold_seconds`` passed since polling started,
    ``refresh`` reclassifies ``connecting`` as ``waking``.
    """

    def __init__(self, *, waking_threshold_seconds: float = 3.0) -> None:
        self.waking_threshold_seconds = waking_threshold_seconds
        self._state = ConnectionState.IDLE
        self._started_at: datetime | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def started_at(self) -> datetime | None:
        return self._started_at

    def begin(self, now: datetime) -> None:
        if self._transition(ConnectionState.CONNECTING):
            self._started_at = now

    def refresh(self, now: datetime) -> ConnectionState:
        """Reclassify a slow first connection as a cold start."""

        if self._state is ConnectionState.CONNECTING and self._started_at is not None:
            elapsed = (now - self._started_at).total_seconds()
            if elapsed > self.waking_threshold_seconds:
                self._transition(ConnectionState.WAKING)
        return self._state

    def mark_connected(self) -> None:
        if self._state in {ConnectionState.CONNECTING, ConnectionState.WAKING}:
            self._transition(ConnectionState.CONNECTED)

    def mark_error(self) -> None:
        if self._transition(ConnectionState.ERROR):
            self._started_at = None

    def finish(self) -> None:
        if self._transition(ConnectionState.IDLE):
            self._started_at = None

    def _transition(self, target: ConnectionState) -> bool:
        if target not in _ALLOWED_TRANSITIONS[self._state]:
            return False
        logger.debug("Connection state %s -> %s", self._state.value, target.value)
        self._state = target
        return True
