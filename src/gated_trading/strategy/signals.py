"""Signal aggregation: per-indicator votes, majority consensus and strength.

Every function here is pure. Callers must filter NaN/Inf readings before
calling; nothing in this module checks for them.
"""

from __future__ import annotations

from gated_trading.config import ThresholdConfig
from gated_trading.types import IndicatorSnapshot, Signal, SignalVerdict

_RSI_EXTREME_LOW = 30.0
_RSI_EXTREME_HIGH = 70.0
_RSI_MODERATE_LOW = 40.0
_RSI_MODERATE_HIGH = 60.0
_HIST_STRONG = 0.01
_HIST_MODERATE = 0.005


def signal_from_rsi(rsi: float, overbought: float, oversold: float) -> Signal:
    """Sell above overbought, buy below oversold. Exact thresholds are neutral."""
    if rsi > overbought:
        return Signal.SELL
    if rsi < oversold:
        return Signal.BUY
    return Signal.NEUTRAL


def signal_from_macd(macd_main: float, macd_signal: float) -> Signal:
    if macd_main > macd_signal:
        return Signal.BUY
    if macd_main < macd_signal:
        return Signal.SELL
    return Signal.NEUTRAL


def signal_from_ma_cross(fast_ma: float, slow_ma: float) -> Signal:
    if fast_ma > slow_ma:
        return Signal.BUY
    if fast_ma < slow_ma:
        return Signal.SELL
    return Signal.NEUTRAL


def combine_signals(*signals: Signal) -> Signal:
    """Plurality of buy vs. sell votes; neutral votes abstain, ties are neutral."""
    buy_count = sum(1 for s in signals if s is Signal.BUY)
    sell_count = sum(1 for s in signals if s is Signal.SELL)
    if buy_count > sell_count:
        return Signal.BUY
    if sell_count > buy_count:
        return Signal.SELL
    return Signal.NEUTRAL


def signal_strength(rsi: float, macd_histogram: float, price_action_baseline: int = 34) -> int:
    """Weighted composite of indicator extremity, clamped to [0, 100]."""
    if rsi < _RSI_EXTREME_LOW or rsi > _RSI_EXTREME_HIGH:
        rsi_points = 33
    elif rsi < _RSI_MODERATE_LOW or rsi > _RSI_MODERATE_HIGH:
        rsi_points = 20
    else:
        rsi_points = 10

    magnitude = abs(macd_histogram)
    if magnitude > _HIST_STRONG:
        macd_points = 33
    elif magnitude > _HIST_MODERATE:
        macd_points = 20
    else:
        macd_points = 10

    return max(0, min(100, rsi_points + macd_points + price_action_baseline))


def evaluate(snapshot: IndicatorSnapshot, config: ThresholdConfig) -> SignalVerdict:
    """Aggregate one snapshot into a directional verdict."""
    direction = combine_signals(
        signal_from_rsi(snapshot.rsi, config.overbought, config.oversold),
        signal_from_macd(snapshot.macd_main, snapshot.macd_signal),
        signal_from_ma_cross(snapshot.fast_ma, snapshot.slow_ma),
    )
    strength = signal_strength(
        snapshot.rsi,
        snapshot.macd_histogram,
        config.price_action_baseline,
    )
    return SignalVerdict(direction=direction, strength=strength)
