from __future__ import annotations

import pytest

from gated_trading.config import RiskConfig
from gated_trading.risk.sizing import (
    PositionSizer,
    calculate_take_profit,
    floor_to_step,
    stop_distance_points,
    stop_from_atr,
)
from gated_trading.risk.state import RiskState
from gated_trading.types import AccountSnapshot, SizingRequest


class _NoPositionsGateway:
    def open_positions_count(self, instrument: str | None = None) -> int:
        return 0


def _sizer(initial_balance: float = 10_000.0) -> PositionSizer:
    state = RiskState(_NoPositionsGateway(), "TEST")  # type: ignore[arg-type]
    state.initialize(initial_balance, initial_balance)
    return PositionSizer(state)


def _request(
    stop_points: float,
    *,
    tick_value: float = 1.0,
    tick_size: float = 1.0,
    contract_size: float = 1.0,
    volume_min: float = 0.01,
    volume_max: float = 100.0,
    volume_step: float = 0.01,
) -> SizingRequest:
    return SizingRequest(
        stop_distance_points=stop_points,
        tick_value=tick_value,
        tick_size=tick_size,
        contract_size=contract_size,
        volume_min=volume_min,
        volume_max=volume_max,
        volume_step=volume_step,
    )


def _account(equity: float = 10_000.0, open_count: int = 0) -> AccountSnapshot:
    return AccountSnapshot(balance=equity, equity=equity, open_position_count=open_count)


def test_compute_quantity_from_risk_budget() -> None:
    result = _sizer().compute_quantity(RiskConfig(), _account(), _request(100.0))
    assert not result.rejected
    assert result.qty == pytest.approx(1.0)


def test_compute_quantity_floors_to_step() -> None:
    result = _sizer().compute_quantity(RiskConfig(), _account(), _request(300.0))
    assert result.qty == pytest.approx(0.33)


@pytest.mark.parametrize("stop_points", [0.0, -5.0])
def test_rejects_non_positive_stop_distance(stop_points: float) -> None:
    result = _sizer().compute_quantity(RiskConfig(), _account(), _request(stop_points))
    assert result.rejected
    assert result.reason == "invalid_stop_distance"
    assert result.qty == 0.0


def test_rejects_when_max_open_positions_reached() -> None:
    config = RiskConfig(max_open_positions=5)
    sizer = _sizer()
    for equity in [1_000.0, 10_000.0, 1_000_000.0]:
        for stop_points in [1.0, 50.0, 500.0]:
            result = sizer.compute_quantity(
                config,
                _account(equity, open_count=5),
                _request(stop_points),
            )
            assert result.reason == "max_open_positions"


def test_rejects_when_equity_unhealthy() -> None:
    config = RiskConfig(min_equity_percent=80.0, max_drawdown_percent=50.0)
    result = _sizer(10_000.0).compute_quantity(config, _account(7_000.0), _request(100.0))
    assert result.reason == "equity_unhealthy"


def test_rejects_budget_below_volume_min_for_large_contract() -> None:
    request = _request(
        100.0,
        tick_value=1.0,
        tick_size=0.0001,
        contract_size=100_000.0,
        volume_min=0.01,
        volume_step=0.01,
    )
    result = _sizer().compute_quantity(RiskConfig(risk_percent_per_trade=1.0), _account(), request)
    assert result.rejected
    assert result.reason == "below_volume_min"


def test_quantity_capped_at_volume_max() -> None:
    config = RiskConfig(risk_percent_per_trade=5.0, max_position_size_percent=100.0)
    result = _sizer().compute_quantity(config, _account(), _request(1.0, volume_max=100.0))
    assert result.qty == pytest.approx(100.0)


def test_exposure_ceiling_binds_when_smaller() -> None:
    config = RiskConfig(risk_percent_per_trade=2.0, max_position_size_percent=1.0)
    result = _sizer().compute_quantity(config, _account(), _request(100.0))
    assert result.qty == pytest.approx(1.0)


def test_exposure_ceiling_below_min_rejects() -> None:
    config = RiskConfig(risk_percent_per_trade=1.0, max_position_size_percent=0.005)
    result = _sizer().compute_quantity(config, _account(), _request(100.0))
    assert result.reason == "exposure_cap_below_min"


def test_invalid_economics_rejected() -> None:
    result = _sizer().compute_quantity(RiskConfig(), _account(), _request(100.0, tick_size=0.0))
    assert result.reason == "invalid_instrument_economics"


def test_quantity_is_step_multiple_and_within_budget() -> None:
    sizer = _sizer(1_000.0)
    for equity in [1_234.56, 10_000.0, 98_765.4]:
        for stop_points in [7.0, 33.3, 150.0, 999.0]:
            for step in [0.001, 0.01, 0.1]:
                for risk_pct in [0.25, 1.0, 3.0]:
                    config = RiskConfig(
                        risk_percent_per_trade=risk_pct,
                        max_position_size_percent=100.0,
                    )
                    request = _request(
                        stop_points,
                        volume_min=step,
                        volume_max=1_000_000.0,
                        volume_step=step,
                    )
                    result = sizer.compute_quantity(config, _account(equity), request)
                    if result.rejected:
                        assert result.reason == "below_volume_min"
                        continue
                    steps = result.qty / step
                    assert abs(steps - round(steps)) < 1e-6
                    risk_per_lot = stop_points * request.tick_value * request.contract_size
                    budget = equity * risk_pct / 100.0
                    assert result.qty * risk_per_lot <= budget + step * risk_per_lot + 1e-9
                    assert result.qty >= request.volume_min


def test_floor_to_step_never_rounds_up() -> None:
    assert floor_to_step(0.159, 0.01) == pytest.approx(0.15)
    assert floor_to_step(0.3, 0.1) == pytest.approx(0.3)
    assert floor_to_step(0.0099, 0.01) == 0.0
    assert floor_to_step(5.0, 0.0) == 0.0


@pytest.mark.parametrize("ratio", [0.5, 1.0, 1.7, 2.0, 3.3, 10.0])
def test_take_profit_round_trip(ratio: float) -> None:
    entry, stop = 100.0, 95.0
    target = calculate_take_profit(entry, stop, ratio, "LONG")
    assert (target - entry) / (entry - stop) == pytest.approx(ratio)

    short_stop = 105.0
    short_target = calculate_take_profit(entry, short_stop, ratio, "SHORT")
    assert (short_target - entry) / (entry - short_stop) == pytest.approx(ratio)


def test_stop_from_atr() -> None:
    assert stop_from_atr(100.0, 2.0, 1.5, "LONG") == pytest.approx(97.0)
    assert stop_from_atr(100.0, 2.0, 1.5, "SHORT") == pytest.approx(103.0)
    assert stop_from_atr(100.0, 0.0, 1.5, "LONG") is None
    assert stop_from_atr(100.0, 2.0, -1.0, "SHORT") is None
    assert stop_from_atr(1.0, 2.0, 1.0, "LONG") is None


def test_stop_distance_points() -> None:
    assert stop_distance_points(1.1000, 1.0950, 0.0001) == pytest.approx(50.0)
    assert stop_distance_points(100.0, 95.0, 0.0) == 0.0


def test_rejects_when_position_count_unavailable() -> None:
    class _BrokenGateway:
        def open_positions_count(self, instrument: str | None = None) -> int:
            raise ConnectionError("venue down")

    state = RiskState(_BrokenGateway(), "TEST")  # type: ignore[arg-type]
    state.initialize(10_000.0, 10_000.0)
    result = PositionSizer(state).compute_quantity(RiskConfig(), _account(), _request(100.0))
    assert result.reason == "max_open_positions"


def test_volume_max_below_min_is_named() -> None:
    request = _request(100.0, volume_min=0.015, volume_max=0.019, volume_step=0.01)
    result = _sizer().compute_quantity(RiskConfig(), _account(), request)
    assert result.reason == "volume_max_below_min"
