"""HTTP access to the remote portfolio-analysis API."""

from portfolio_watch.http.client import (
    DEFAULT_HOLDINGS,
    AnalysisApiClient,
    QueryFailureKind,
    ResultQueryError,
)

__all__ = [
    "DEFAULT_HOLDINGS",
    "AnalysisApiClient",
    "QueryFailureKind",
    "ResultQueryError",
]
