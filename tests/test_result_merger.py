from __future__ import annotations

import allure

from portfolio_watch.polling.merger import merge_results

pytestmark = [
    allure.epic("Result Polling"),
    allure.feature("Partial Result Reconciliation"),
]

EXPECTED = frozenset({"math_correlation", "math_volatility", "optimization_esg"})


def test_merge_adds_new_subtasks_and_clears_them_from_pending() -> None:
    outcome = merge_results({}, EXPECTED, {"math_correlation": {"matrix": [[1.0]]}})

    assert outcome.results == {"math_correlation": {"matrix": [[1.0]]}}
    assert outcome.pending == {"math_volatility", "optimization_esg"}
    assert outcome.merged == ("math_correlation",)
    assert outcome.had_new_data


def test_merge_never_replaces_an_already_merged_subtask() -> None:
    first = merge_results({}, EXPECTED, {"math_correlation": "first"})
    second = merge_results(
        first.results,
        first.pending,
        {"math_correlation": "second", "math_volatility": "vol"},
    )

    assert second.results["math_correlation"] == "first"
    assert second.results["math_volatility"] == "vol"
    assert second.merged == ("math_volatility",)


def test_empty_batch_is_a_repeatable_no_op() -> None:
    results = {"math_correlation": 1}
    pending = frozenset({"math_volatility"})

    for _ in range(3):
        outcome = merge_results(results, pending, {})
        assert outcome.results == results
        assert outcome.pending == pending
        assert not outcome.had_new_data


def test_batch_of_only_known_results_reports_no_new_data() -> None:
    outcome = merge_results(
        {"math_correlation": 1},
        EXPECTED - {"math_correlation"},
        {"math_correlation": 2},
    )

    assert not outcome.had_new_data
    assert outcome.results == {"math_correlation": 1}


def test_unknown_subtask_is_merged_without_touching_pending() -> None:
    outcome = merge_results({}, EXPECTED, {"math_liquidity": {"score": 3}})

    assert outcome.results == {"math_liquidity": {"score": 3}}
    assert outcome.pending == EXPECTED
    assert outcome.had_new_data


def test_merge_does_not_mutate_inputs() -> None:
    results = {"math_correlation": 1}
    pending = {"math_volatility", "optimization_esg"}

    merge_results(results, pending, {"math_volatility": 2})

    assert results == {"math_correlation": 1}
    assert pending == {"math_volatility", "optimization_esg"}


def test_pending_and_merged_keys_stay_disjoint_over_many_batches() -> None:
    batches = [
        {"math_volatility": 1},
        {},
        {"math_volatility": 9, "math_liquidity": 2},
        {"optimization_esg": 3, "math_correlation": 4},
    ]
    results: dict[str, object] = {}
    pending: frozenset[str] = EXPECTED
    seen_sizes = []
    for batch in batches:
        outcome = merge_results(results, pending, batch)
        assert not (outcome.pending & outcome.results.keys())
        assert EXPECTED <= outcome.pending | outcome.results.keys()
        for key, value in results.items():
            assert outcome.results[key] is value
        results, pending = outcome.results, outcome.pending
        seen_sizes.append(len(results))

    assert seen_sizes == sorted(seen_sizes)
    assert pending == frozenset()
