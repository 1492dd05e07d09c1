"""Risk-budget position sizing plus stop/target placement."""

from __future__ import annotations

import math

from gated_trading.config import RiskConfig
from gated_trading.risk.state import RiskState
from gated_trading.types import AccountSnapshot, SizingRequest, SizingResult, Side
from gated_trading.utils.logging import get_logger

# Absorbs float noise such as 2.9999999999 steps; never adds a whole step.
_STEP_EPS = 1e-9


def step_decimals(step: float) -> int:
    """Number of decimals needed to print a volume step exactly."""
    text = f"{step:.10f}".rstrip("0")
    _, _, fraction = text.partition(".")
    return len(fraction)


def floor_to_step(value: float, step: float) -> float:
    """Round value down to a whole number of steps."""
    if step <= 0 or value <= 0:
        return 0.0
    steps = math.floor(value / step + _STEP_EPS)
    return round(steps * step, step_decimals(step))


def stop_distance_points(entry: float, stop: float, tick_size: float) -> float:
    if tick_size <= 0:
        return 0.0
    return abs(entry - stop) / tick_size


def calculate_take_profit(entry: float, stop: float, reward_risk_ratio: float, side: Side) -> float:
    """Place the target reward_risk_ratio stop-distances away from entry."""
    distance = abs(entry - stop) * reward_risk_ratio
    if side == "LONG":
        return entry + distance
    return entry - distance


def stop_from_atr(price: float, atr: float, atr_multiplier: float, side: Side) -> float | None:
    """Volatility stop below a long / above a short. None when inputs are not positive."""
    if price <= 0 or atr <= 0 or atr_multiplier <= 0:
        return None
    offset = atr * atr_multiplier
    if side == "LONG":
        stop = price - offset
        return stop if stop > 0 else None
    return price + offset


class PositionSizer:
    """Converts a money-risk budget into a venue-valid quantity.

    Gates run in a fixed order and the first failing gate names the
    rejection reason.
    """

    def __init__(self, risk_state: RiskState) -> None:
        self._risk_state = risk_state
        self._logger = get_logger("gated_trading.risk.sizing")

    def compute_quantity(
        self,
        config: RiskConfig,
        account: AccountSnapshot,
        request: SizingRequest,
    ) -> SizingResult:
        stop_points = request.stop_distance_points
        if not stop_points > 0:
            return SizingResult.reject("invalid_stop_distance")
        open_count = max(account.open_position_count, self._risk_state.open_positions_count())
        if open_count >= config.max_open_positions:
            return SizingResult.reject("max_open_positions")
        if not self._risk_state.is_equity_healthy(account.equity, config):
            return SizingResult.reject("equity_unhealthy")
        if account.equity <= 0:
            return SizingResult.reject("non_positive_equity")
        if not _economics_valid(request):
            return SizingResult.reject("invalid_instrument_economics")

        risk_per_lot = stop_points * request.tick_value * request.contract_size / request.tick_size
        risk_amount = account.equity * config.risk_percent_per_trade / 100.0
        qty = floor_to_step(risk_amount / risk_per_lot, request.volume_step)
        if qty < request.volume_min:
            return SizingResult.reject("below_volume_min")

        max_volume = floor_to_step(request.volume_max, request.volume_step)
        if qty > max_volume:
            qty = max_volume
            if qty < request.volume_min:
                return SizingResult.reject("volume_max_below_min")

        exposure_amount = account.equity * config.max_position_size_percent / 100.0
        max_lot_by_percent = floor_to_step(exposure_amount / risk_per_lot, request.volume_step)
        if qty > max_lot_by_percent:
            qty = max_lot_by_percent
        if qty < request.volume_min:
            return SizingResult.reject("exposure_cap_below_min")

        self._logger.debug(
            "position_sized",
            risk_amount=risk_amount,
            raw_qty=risk_amount / risk_per_lot,
            qty=qty,
            max_lot_by_percent=max_lot_by_percent,
        )
        return SizingResult(qty=qty)


def _economics_valid(request: SizingRequest) -> bool:
    return (
        request.tick_value > 0
        and request.tick_size > 0
        and request.contract_size > 0
        and request.volume_step > 0
        and request.volume_min > 0
        and request.volume_max >= request.volume_min
    )
