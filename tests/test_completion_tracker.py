from __future__ import annotations

import allure

from portfolio_watch.polling.tracker import CompletionTracker

pytestmark = [
    allure.epic("Result Polling"),
    allure.feature("Progress Tracking"),
]


def test_seed_marks_every_subtask_pending() -> None:
    tracker = CompletionTracker(("a", "b", "c"))

    assert tracker.pending == {"a", "b", "c"}
    assert tracker.total == 3
    assert tracker.progress == 0
    assert not tracker.is_complete()


def test_progress_rounds_to_nearest_integer() -> None:
    tracker = CompletionTracker(("a", "b", "c"))

    tracker.remove_completed(["a"])
    assert tracker.progress == 33

    tracker.remove_completed(["b"])
    assert tracker.progress == 67

    tracker.remove_completed(["c"])
    assert tracker.progress == 100
    assert tracker.is_complete()


def test_half_values_round_up() -> None:
    tracker = CompletionTracker([f"s{i}" for i in range(8)])

    tracker.remove_completed(["s0"])

    assert tracker.progress == 13


def test_removing_unknown_names_changes_nothing() -> None:
    tracker = CompletionTracker(("a", "b"))

    tracker.remove_completed(["zzz"])

    assert tracker.pending == {"a", "b"}
    assert tracker.progress == 0


def test_server_totals_take_precedence() -> None:
    tracker = CompletionTracker(("a", "b", "c"))
    tracker.remove_completed(["a"])

    assert tracker.override_total(4, 2)
    assert tracker.total == 4
    assert tracker.progress == 50

    tracker.remove_completed(["b"])
    # Four expected, one still pending locally.
    assert tracker.progress == 75


def test_server_totals_are_ignored_when_incomplete() -> None:
    tracker = CompletionTracker(("a", "b"))

    assert not tracker.override_total(None, 1)
    assert not tracker.override_total(0, 0)
    assert not tracker.override_total(5, None)
    assert not tracker.override_total(5, -1)
    assert tracker.total == 2


def test_progress_never_regresses_when_server_total_shrinks() -> None:
    tracker = CompletionTracker(("a", "b", "c", "d"))
    tracker.remove_completed(["a", "b", "c"])
    assert tracker.progress == 75

    tracker.override_total(2, 1)

    assert tracker.total == 2
    assert tracker.progress == 75


def test_force_complete_empties_pending() -> None:
    tracker = CompletionTracker(("a", "b", "c"))

    tracker.force_complete()

    assert tracker.is_complete()
    assert tracker.pending == frozenset()
    assert tracker.progress == 100


def test_seed_resets_previous_job() -> None:
    tracker = CompletionTracker(("a", "b"))
    tracker.remove_completed(["a"])
    tracker.override_total(5, 4)

    tracker.seed(("x", "y", "z"))

    assert tracker.pending == {"x", "y", "z"}
    assert tracker.total == 3
    assert tracker.progress == 0


def test_empty_enumeration_is_complete_from_the_start() -> None:
    tracker = CompletionTracker(())

    assert tracker.is_complete()
    assert tracker.progress == 0
