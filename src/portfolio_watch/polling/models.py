"""Domain models shared by the polling engine and its result sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

ANALYSIS_SUBTASKS: tuple[str, ...] = (
    "math_correlation",
    "math_risk_metrics",
    "math_performance",
    "math_volatility",
    "math_quality_metrics",
    "math_performance_attribution",
    "optimization_risk_decomposition",
    "optimization_strategy_generation",
    "optimization_implementation",
    "optimization_stress_testing",
    "optimization_esg",
)


Cursor = str | int | float


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


class ConnectionState(str, Enum):
    """Connection lifecycle of one polled job."""

    IDLE = "idle"
    CONNECTING = "connecting"
    WAKING = "waking"
    CONNECTED = "connected"
    ERROR = "error"


class PollingRecommendation(str, Enum):
    """Server-side hint about how soon to poll again."""

    AGGRESSIVE = "aggressive"
    MODERATE = "moderate"
    GENTLE = "gentle"
    STOP = "stop"

    @classmethod
    def parse(cls, value: object) -> PollingRecommendation | None:
        """Return the recognised recommendation or ``None`` for anything else."""

        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class SchedulingMetadata:
    """Scheduling hints attached to a poll response.

    ``None`` always means the server did not send the field, so a reported
    total of zero is distinguishable from an absent one.
    """

    recommendation: PollingRecommendation | None = None
    total_subtasks: int | None = None
    completed_subtasks: int | None = None

    @property
    def has_totals(self) -> bool:
        return (
            self.total_subtasks is not None
            and self.total_subtasks > 0
            and self.completed_subtasks is not None
            and self.completed_subtasks >= 0
        )


@dataclass(frozen=True, slots=True)
class PollResponse:
    """Decoded answer of one result query."""

    new_results: dict[str, Any] = field(default_factory=dict)
    next_cursor: Cursor | None = None
    scheduling: SchedulingMetadata = field(default_factory=SchedulingMetadata)
    undecodable: tuple[str, ...] = ()


class ResultSource(Protocol):
    """Protocol implemented by anything that can be polled for subtask results."""

    def fetch_results(self, job_id: str, cursor: Cursor | None = None) -> PollResponse:
        """Return results discovered after ``cursor`` for ``job_id``."""


@dataclass(frozen=True, slots=True)
class PollingSnapshot:
    """Read model of one job's polling state, safe to hand to observers."""

    job_id: str | None
    results: dict[str, Any]
    pending: frozenset[str]
    progress: int
    connection_state: ConnectionState
    loading_started_at: datetime | None
    error: BaseException | None
    cursor: Cursor | None = None
    empty_polls: int = 0

    @property
    def is_loading(self) -> bool:
        return self.connection_state in {
            ConnectionState.CONNECTING,
            ConnectionState.WAKING,
            ConnectionState.CONNECTED,
        }

    @property
    def is_complete(self) -> bool:
        """True once a started job has nothing pending and did not fail."""

        return self.job_id is not None and not self.pending and self.error is None


EMPTY_SNAPSHOT = PollingSnapshot(
    job_id=None,
    results={},
    pending=frozenset(),
    progress=0,
    connection_state=ConnectionState.IDLE,
    loading_started_at=None,
    error=None,
)
