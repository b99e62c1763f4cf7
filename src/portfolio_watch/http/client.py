"""HTTP client for the remote portfolio-analysis API."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx

from portfolio_watch import __version__
from portfolio_watch.config import ApiSettings
from portfolio_watch.http.decoding import decode_poll_payload
from portfolio_watch.polling.models import Cursor, PollResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = f"portfolio-watch/{__version__}"

DEFAULT_HOLDINGS: tuple[tuple[str, float], ...] = (
    ("BRX", 10),
    ("CHX", 12),
    ("LW", 8),
    ("O", 14),
    ("PPL", 11),
    ("DOG", 6),
    ("YHC", 5),
    ("YNDX", 9),
    ("XP", 7),
)


class QueryFailureKind(str, Enum):
    """Normalized reasons a remote query failed."""

    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    HTTP_STATUS = "http_status"
    UNAUTHORIZED = "unauthorized"
    INVALID_RESPONSE = "invalid_response"


class ResultQueryError(RuntimeError):
    """Remote query failure with a normalized kind."""

    def __init__(
        self,
        message: str,
        *,
        kind: QueryFailureKind,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        if self.kind in {QueryFailureKind.TIMEOUT, QueryFailureKind.UNREACHABLE}:
            return True
        return self.status_code is not None and self.status_code >= 500


class AnalysisApiClient:
    """httpx wrapper for starting analyses and polling their results."""

    def __init__(  # noqa: PLR0913
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {
            "User-Agent": user_agent,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(timeout_seconds, connect=connect_timeout_seconds),
            headers=headers,
            transport=transport,
            follow_redirects=True,
        )

    @classmethod
    def from_settings(
        cls,
        settings: ApiSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> AnalysisApiClient:
        return cls(
            settings.base_url,
            token=settings.token,
            timeout_seconds=settings.request_timeout_seconds,
            connect_timeout_seconds=settings.connect_timeout_seconds,
            transport=transport,
        )

    def fetch_results(self, job_id: str, cursor: Cursor | None = None) -> PollResponse:
        """Fetch subtask results discovered after ``cursor``."""

        params = {"since": str(cursor)} if cursor is not None else None
        data = self._request_json(
            "GET",
            f"session/{quote(job_id, safe='')}/results",
            params=params,
        )
        return decode_poll_payload(data)

    def start_analysis(
        self,
        holdings: Iterable[tuple[str, float]],
        portfolio_name: str = "Web Demo",
        version_name: str = "v1",
    ) -> str:
        """Submit a portfolio for analysis and return the analysis run id."""

        payload = {
            "holdings": [{"ticker": ticker, "shares": shares} for ticker, shares in holdings],
            "portfolio_name": portfolio_name,
            "version_name": version_name,
        }
        data = self._request_json("POST", "analyze-portfolio", json=payload)
        run_id = data.get("analysis_run_id") or data.get("session_id")
        if not run_id:
            raise ResultQueryError(
                "Analysis API response has no analysis_run_id.",
                kind=QueryFailureKind.INVALID_RESPONSE,
            )
        return str(run_id)

    def _request_json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Timeout calling %s %s", method, path)
            raise ResultQueryError(
                f"Timeout calling {method} {path}",
                kind=QueryFailureKind.TIMEOUT,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("HTTP error calling %s %s: %s", method, path, exc)
            raise ResultQueryError(str(exc), kind=QueryFailureKind.UNREACHABLE) from exc

        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise ResultQueryError(
                "Analysis API rejected the token (HTTP 401).",
                kind=QueryFailureKind.UNAUTHORIZED,
                status_code=response.status_code,
            )
        if not response.is_success:
            raise ResultQueryError(
                f"HTTP {response.status_code} from {method} {path}",
                kind=QueryFailureKind.HTTP_STATUS,
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise ResultQueryError(
                f"Invalid JSON from {method} {path}",
                kind=QueryFailureKind.INVALID_RESPONSE,
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise ResultQueryError(
                f"Unexpected JSON payload from {method} {path}",
                kind=QueryFailureKind.INVALID_RESPONSE,
                status_code=response.status_code,
            )
        return data

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> AnalysisApiClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
