"""Decode raw result-query payloads into ``PollResponse`` objects."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from portfolio_watch.polling.models import (
    Cursor,
    PollingRecommendation,
    PollResponse,
    SchedulingMetadata,
)

logger = logging.getLogger(__name__)

READY_STATUS = "ready"


def decode_poll_payload(data: Mapping[str, Any]) -> PollResponse:
    """Translate one ``/session/<id>/results`` body."""

    results, undecodable = decode_results(data.get("results"))
    metadata = data.get("metadata")
    return PollResponse(
        new_results=results,
        next_cursor=_cursor(data.get("timestamp")),
        scheduling=decode_scheduling(metadata if isinstance(metadata, Mapping) else {}),
        undecodable=undecodable,
    )


def decode_results(raw: object) -> tuple[dict[str, Any], tuple[str, ...]]:
    """Return decoded payloads by subtask and the subtasks that failed to decode.

    Two entry shapes are accepted: a ``{"status": ..., "result": ...}`` wrapper,
    whose ``result`` may be a JSON string, and a bare payload object. Wrapped
    entries that are not ready yet are skipped silently.
    """

    if not isinstance(raw, Mapping):
        return {}, ()

    parsed: dict[str, Any] = {}
    undecodable: list[str] = []
    for subtask, entry in raw.items():
        if not isinstance(entry, Mapping):
            continue
        if "status" not in entry:
            parsed[subtask] = dict(entry)
            continue
        if entry.get("status") != READY_STATUS or not entry.get("result"):
            continue
        payload = entry["result"]
        if isinstance(payload, str | bytes):
            try:
                payload = json.loads(payload)
            except ValueError as exc:
                logger.warning("Undecodable result payload for subtask %s: %s", subtask, exc)
                undecodable.append(subtask)
                continue
        parsed[subtask] = payload
    return parsed, tuple(undecodable)


def decode_scheduling(metadata: Mapping[str, Any]) -> SchedulingMetadata:
    return SchedulingMetadata(
        recommendation=PollingRecommendation.parse(
            _first_present(metadata, "pollingRecommendation", "polling_recommendation"),
        ),
        total_subtasks=_optional_int(_first_present(metadata, "totalTools", "total_tools")),
        completed_subtasks=_optional_int(
            _first_present(metadata, "completedTools", "completed_tools"),
        ),
    )


def _first_present(metadata: Mapping[str, Any], *keys: str) -> object:
    for key in keys:
        if key in metadata:
            return metadata[key]
    return None


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _cursor(value: object) -> Cursor | None:
    if isinstance(value, bool) or value is None or value == "":
        return None
    if isinstance(value, str | int | float):
        return value
    return None
