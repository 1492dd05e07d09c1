from __future__ import annotations

import pytest

from gated_trading.config import RiskConfig
from gated_trading.errors import ExecutionError
from gated_trading.risk.state import BLOCKING_POSITION_COUNT, RiskState


class _CountingGateway:
    def __init__(self, count: int = 0, fail: bool = False) -> None:
        self.count = count
        self.fail = fail
        self.queried: list[str | None] = []

    def open_positions_count(self, instrument: str | None = None) -> int:
        self.queried.append(instrument)
        if self.fail:
            raise ExecutionError("gateway_down")
        return self.count


def _state(balance: float = 10_000.0, equity: float = 10_000.0) -> RiskState:
    state = RiskState(_CountingGateway(), "BTCUSDT")  # type: ignore[arg-type]
    state.initialize(balance, equity)
    return state


def test_initialize_sets_initial_and_peak() -> None:
    state = _state(10_000.0, 10_250.0)
    assert state.initialized
    assert state.initial_balance == 10_000.0
    assert state.peak_equity == 10_250.0


def test_update_peak_is_monotonic() -> None:
    state = _state()
    for equity in [10_000.0, 9_500.0, 9_000.0, 9_000.0]:
        state.update_peak(equity)
        assert state.peak_equity == 10_000.0

    state.update_peak(10_500.0)
    state.update_peak(10_200.0)
    assert state.peak_equity == 10_500.0


def test_update_peak_never_below_any_seen_equity() -> None:
    state = _state(1_000.0, 1_000.0)
    seen = [1_000.0, 1_200.0, 900.0, 1_500.0, 1_499.0, 300.0]
    for equity in seen:
        state.update_peak(equity)
        assert state.peak_equity >= max(seen[: seen.index(equity) + 1])


def test_drawdown_from_peak() -> None:
    state = _state()
    assert state.current_drawdown_pct(9_000.0) == pytest.approx(10.0)
    assert state.current_drawdown_pct(11_000.0) == 0.0


def test_drawdown_with_non_positive_peak_is_zero() -> None:
    state = _state(0.0, 0.0)
    assert state.current_drawdown_pct(-50.0) == 0.0


def test_equity_health_is_benchmarked_on_initial_balance() -> None:
    config = RiskConfig(min_equity_percent=80.0)
    state = _state()
    assert state.is_equity_healthy(9_000.0, config)

    state.update_peak(20_000.0)
    assert state.is_equity_healthy(9_000.0, config)
    assert state.is_equity_healthy(8_000.0, config)
    assert not state.is_equity_healthy(7_999.0, config)


def test_equity_stop_disabled_is_always_healthy() -> None:
    state = _state()
    assert state.is_equity_healthy(1.0, RiskConfig(use_equity_stop=False))


def test_max_drawdown_exceeded_at_limit() -> None:
    config = RiskConfig(max_drawdown_percent=20.0)
    state = _state()
    assert state.is_max_drawdown_exceeded(8_000.0, config)
    assert not state.is_max_drawdown_exceeded(8_001.0, config)


def test_open_positions_count_delegates_to_gateway() -> None:
    gateway = _CountingGateway(count=3)
    state = RiskState(gateway, "ETHUSDT")  # type: ignore[arg-type]
    assert state.open_positions_count() == 3
    assert gateway.queried == ["ETHUSDT"]


def test_open_positions_count_degrades_to_blocking_value() -> None:
    state = RiskState(_CountingGateway(fail=True), "BTCUSDT")  # type: ignore[arg-type]
    assert state.open_positions_count() == BLOCKING_POSITION_COUNT
