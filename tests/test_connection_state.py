from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure

from portfolio_watch.polling.connection import ConnectionStateMachine
from portfolio_watch.polling.models import ConnectionState

pytestmark = [
    allure.epic("Result Polling"),
    allure.feature("Connection State"),
]

T0 = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def _begun(threshold: float = 3.0) -> ConnectionStateMachine:
    machine = ConnectionStateMachine(waking_threshold_seconds=threshold)
    machine.begin(T0)
    return machine


def test_new_machine_is_idle() -> None:
    machine = ConnectionStateMachine()

    assert machine.state is ConnectionState.IDLE
    assert machine.started_at is None


def test_begin_records_start_time() -> None:
    machine = _begun()

    assert machine.state is ConnectionState.CONNECTING
    assert machine.started_at == T0


def test_slow_first_response_is_reclassified_as_waking() -> None:
    machine = _begun()

    assert machine.refresh(T0 + timedelta(seconds=3)) is ConnectionState.CONNECTING
    assert machine.refresh(T0 + timedelta(seconds=3.5)) is ConnectionState.WAKING


def test_waking_then_connected() -> None:
    machine = _begun()
    machine.refresh(T0 + timedelta(seconds=10))

    machine.mark_connected()

    assert machine.state is ConnectionState.CONNECTED


def test_connected_never_reverts_to_connecting_or_waking() -> None:
    machine = _begun()
    machine.mark_connected()

    machine.refresh(T0 + timedelta(minutes=5))
    machine.begin(T0 + timedelta(minutes=5))
    machine.mark_connected()

    assert machine.state is ConnectionState.CONNECTED
    assert machine.started_at == T0


def test_error_from_any_active_state_clears_start_time() -> None:
    for prepare in (
        lambda m: None,
        lambda m: m.refresh(T0 + timedelta(seconds=60)),
        lambda m: m.mark_connected(),
    ):
        machine = _begun()
        prepare(machine)

        machine.mark_error()

        assert machine.state is ConnectionState.ERROR
        assert machine.started_at is None


def test_error_is_terminal() -> None:
    machine = _begun()
    machine.mark_error()

    machine.mark_connected()
    machine.finish()
    machine.begin(T0)

    assert machine.state is ConnectionState.ERROR


def test_finish_returns_to_idle() -> None:
    machine = _begun()
    machine.mark_connected()

    machine.finish()
    machine.finish()

    assert machine.state is ConnectionState.IDLE
    assert machine.started_at is None


def test_zero_threshold_wakes_on_any_delay() -> None:
    machine = _begun(threshold=0)

    assert machine.refresh(T0) is ConnectionState.CONNECTING
    assert machine.refresh(T0 + timedelta(milliseconds=1)) is ConnectionState.WAKING
