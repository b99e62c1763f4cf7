"""Runtime configuration for the analysis API client and polling engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse


@dataclass(slots=True)
class ApiSettings:
    """Remote analysis API settings."""

    base_url: str = "http://localhost:8000/api"
    token: str | None = None
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0


@dataclass(slots=True)
class PollingSettings:
    """Cadence of result polling."""

    aggressive_delay_ms: int = 2_000
    moderate_delay_ms: int = 7_000
    gentle_delay_ms: int = 20_000
    base_delay_ms: int = 2_000
    growth_factor: float = 1.3
    max_delay_ms: int = 30_000
    waking_threshold_seconds: float = 3.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    api: ApiSettings = field(default_factory=ApiSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for local development."""

        token = os.getenv("PORTFOLIO_WATCH_API_TOKEN", "").strip()
        return cls(
            api=ApiSettings(
                base_url=os.getenv(
                    "PORTFOLIO_WATCH_API_BASE_URL",
                    "http://localhost:8000/api",
                ).strip(),
                token=token or None,
                request_timeout_seconds=float(
                    os.getenv("PORTFOLIO_WATCH_REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
                connect_timeout_seconds=float(
                    os.getenv("PORTFOLIO_WATCH_CONNECT_TIMEOUT_SECONDS", "10.0"),
                ),
            ),
            polling=PollingSettings(
                aggressive_delay_ms=int(os.getenv("PORTFOLIO_WATCH_POLL_AGGRESSIVE_MS", "2000")),
                moderate_delay_ms=int(os.getenv("PORTFOLIO_WATCH_POLL_MODERATE_MS", "7000")),
                gentle_delay_ms=int(os.getenv("PORTFOLIO_WATCH_POLL_GENTLE_MS", "20000")),
                base_delay_ms=int(os.getenv("PORTFOLIO_WATCH_POLL_BASE_MS", "2000")),
                growth_factor=float(os.getenv("PORTFOLIO_WATCH_POLL_GROWTH_FACTOR", "1.3")),
                max_delay_ms=int(os.getenv("PORTFOLIO_WATCH_POLL_MAX_MS", "30000")),
                waking_threshold_seconds=float(
                    os.getenv("PORTFOLIO_WATCH_POLL_WAKING_THRESHOLD_SECONDS", "3.0"),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        _validate_base_url(self.api.base_url)
        if self.api.request_timeout_seconds <= 0:
            raise ValueError("PORTFOLIO_WATCH_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.api.connect_timeout_seconds <= 0:
            raise ValueError("PORTFOLIO_WATCH_CONNECT_TIMEOUT_SECONDS must be > 0.")

        polling = self.polling
        for name, value in (
            ("PORTFOLIO_WATCH_POLL_AGGRESSIVE_MS", polling.aggressive_delay_ms),
            ("PORTFOLIO_WATCH_POLL_MODERATE_MS", polling.moderate_delay_ms),
            ("PORTFOLIO_WATCH_POLL_GENTLE_MS", polling.gentle_delay_ms),
            ("PORTFOLIO_WATCH_POLL_BASE_MS", polling.base_delay_ms),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be > 0.")
        if polling.growth_factor < 1:
            raise ValueError("PORTFOLIO_WATCH_POLL_GROWTH_FACTOR must be >= 1.")
        if polling.max_delay_ms < polling.base_delay_ms:
            raise ValueError(
                "PORTFOLIO_WATCH_POLL_MAX_MS must be >= PORTFOLIO_WATCH_POLL_BASE_MS.",
            )
        if polling.waking_threshold_seconds < 0:
            raise ValueError("PORTFOLIO_WATCH_POLL_WAKING_THRESHOLD_SECONDS must be >= 0.")


def _validate_base_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid API base URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
