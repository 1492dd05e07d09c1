"""Summary metrics for replay results."""

from __future__ import annotations

from statistics import fmean
from typing import Sequence

from gated_trading.backtest.types import EquityPoint
from gated_trading.types import ClosedTrade


def compute_summary_metrics(
    equity_curve: Sequence[EquityPoint],
    trades: Sequence[ClosedTrade],
) -> dict[str, float | int | None]:
    """Compute key metrics for one replay."""
    if not equity_curve:
        return {
            "trade_count": 0,
            "total_return_pct": 0.0,
            "max_drawdown_pct": 0.0,
            "max_drawdown_recovery_bars": None,
            "expectancy_per_trade": 0.0,
            "win_rate_pct": 0.0,
        }

    values = [point.equity for point in equity_curve]
    start = values[0]
    end = values[-1]
    total_return_pct = ((end / start) - 1.0) * 100 if start > 0 else 0.0

    max_drawdown_pct, recovery_bars = max_drawdown_with_recovery(values)
    expectancy = fmean(trade.pnl for trade in trades) if trades else 0.0
    win_count = sum(1 for trade in trades if trade.pnl > 0)
    win_rate = (win_count / len(trades) * 100.0) if trades else 0.0

    return {
        "trade_count": len(trades),
        "total_return_pct": float(total_return_pct),
        "max_drawdown_pct": float(max_drawdown_pct),
        "max_drawdown_recovery_bars": recovery_bars,
        "expectancy_per_trade": float(expectancy),
        "win_rate_pct": float(win_rate),
    }


def max_drawdown_with_recovery(values: Sequence[float]) -> tuple[float, int | None]:
    """Largest peak-to-trough decline in percent, and bars until the peak was regained."""
    if not values:
        return 0.0, None
    peak_value = values[0]
    peak_idx = 0
    max_dd = 0.0
    trough_idx = 0
    peak_idx_for_max_dd = 0

    for idx, value in enumerate(values):
        if value > peak_value:
            peak_value = value
            peak_idx = idx
        drawdown = 0.0 if peak_value <= 0 else (peak_value - value) / peak_value * 100.0
        if drawdown > max_dd:
            max_dd = drawdown
            trough_idx = idx
            peak_idx_for_max_dd = peak_idx

    if max_dd <= 0:
        return 0.0, 0

    recovery_bars: int | None = None
    target = values[peak_idx_for_max_dd]
    for idx in range(trough_idx + 1, len(values)):
        if values[idx] >= target:
            recovery_bars = idx - trough_idx
            break
    return max_dd, recovery_bars
