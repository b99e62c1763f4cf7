"""Adaptive polling and partial-result reconciliation for analysis runs.

A remote analysis run finishes its subtasks independently, in no particular
order. ``AnalysisPoller`` queries the run until every expected subtask has
arrived (or the server says stop), merges each subtask at most once, derives
progress, and exposes a connection state a dashboard can render.
"""

from portfolio_watch.polling.backoff import BackoffPolicy
from portfolio_watch.polling.connection import ConnectionStateMachine
from portfolio_watch.polling.merger import MergeOutcome, merge_results
from portfolio_watch.polling.models import (
    ANALYSIS_SUBTASKS,
    ConnectionState,
    PollingRecommendation,
    PollingSnapshot,
    PollResponse,
    ResultSource,
    SchedulingMetadata,
)
from portfolio_watch.polling.session import AnalysisPoller, CancelToken, JobContext
from portfolio_watch.polling.tracker import CompletionTracker

__all__ = [
    "ANALYSIS_SUBTASKS",
    "AnalysisPoller",
    "BackoffPolicy",
    "CancelToken",
    "CompletionTracker",
    "ConnectionState",
    "ConnectionStateMachine",
    "JobContext",
    "MergeOutcome",
    "PollResponse",
    "PollingRecommendation",
    "PollingSnapshot",
    "ResultSource",
    "SchedulingMetadata",
    "merge_results",
]
