"""Fold newly delivered subtask payloads into the accumulated result set."""

from __future__ import annotations

from collections.abc import Mapping, Set
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class MergeOutcome:
    """Result set and pending set after one merge."""

    results: dict[str, Any]
    pending: frozenset[str]
    merged: tuple[str, ...]

    @property
    def had_new_data(self) -> bool:
        return bool(self.merged)


def merge_results(
    results: Mapping[str, Any],
    pending: Set[str],
    batch: Mapping[str, Any],
) -> MergeOutcome:
    """Merge ``batch`` into ``results`` without replacing already merged subtasks.

    Subtasks unknown to the expected enumeration are merged as well. The inputs
    are never mutated, so an empty batch can be applied any number of times.
    """

    merged_results = dict(results)
    merged: list[str] = []
    for name, payload in batch.items():
        if name in merged_results:
            continue
        merged_results[name] = payload
        merged.append(name)
    return MergeOutcome(
        results=merged_results,
        pending=frozenset(pending).difference(merged_results),
        merged=tuple(merged),
    )
