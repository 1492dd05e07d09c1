"""Indicator computation from OHLCV bars."""

from __future__ import annotations

import numpy as np
import pandas as pd  # type: ignore[import-untyped]

from gated_trading.config import IndicatorPeriods
from gated_trading.errors import StaleDataError
from gated_trading.types import IndicatorSnapshot


def compute_indicator_snapshot(
    df: pd.DataFrame,
    periods: IndicatorPeriods | None = None,
) -> IndicatorSnapshot:
    """Compute the snapshot for the last bar of an ascending OHLCV frame."""
    periods = periods or IndicatorPeriods()
    if df.empty:
        raise StaleDataError("input_ohlcv_empty")
    if not _is_time_ascending(df):
        raise StaleDataError("ohlcv_timestamp_not_ascending")
    if len(df) < periods.min_history:
        raise StaleDataError(f"insufficient_history: {len(df)} < {periods.min_history}")

    close = df["close"].astype(float)
    rsi = _rsi(close, periods.rsi_period)
    macd_main, macd_signal = _macd(close, periods.macd_fast, periods.macd_slow, periods.macd_signal)
    fast_ma = _moving_average(close, periods.fast_ma_period, periods.ma_method)
    slow_ma = _moving_average(close, periods.slow_ma_period, periods.ma_method)
    atr = _atr(df, periods.atr_period)

    values = np.array(
        [
            rsi.iloc[-1],
            macd_main.iloc[-1],
            macd_signal.iloc[-1],
            fast_ma.iloc[-1],
            slow_ma.iloc[-1],
            close.iloc[-1],
            atr.iloc[-1],
        ],
        dtype=float,
    )
    if not bool(np.isfinite(values).all()):
        raise StaleDataError("indicator_not_finite")

    return IndicatorSnapshot(
        rsi=float(values[0]),
        macd_main=float(values[1]),
        macd_signal=float(values[2]),
        fast_ma=float(values[3]),
        slow_ma=float(values[4]),
        price=float(values[5]),
        atr=float(values[6]),
    )


def _is_time_ascending(df: pd.DataFrame) -> bool:
    open_time = df.get("open_time")
    if open_time is None:
        return False
    return bool(pd.Series(open_time).is_monotonic_increasing)


def _ema(series: pd.Series, period: int) -> pd.Series:
    return series.ewm(span=period, adjust=False).mean()


def _moving_average(series: pd.Series, period: int, method: str) -> pd.Series:
    if method == "sma":
        return series.rolling(window=period, min_periods=period).mean()
    return _ema(series, period)


def _rsi(close: pd.Series, period: int) -> pd.Series:
    """Wilder RSI. A window with no losses reads 100, a flat window 50."""
    delta = close.diff()
    gain = delta.clip(lower=0.0)
    loss = -delta.clip(upper=0.0)
    avg_gain = gain.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()
    avg_loss = loss.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()
    rs = avg_gain / avg_loss.replace(0.0, np.nan)
    rsi = 100.0 - 100.0 / (1.0 + rs)
    rsi = rsi.where(avg_loss > 0, 100.0)
    rsi = rsi.where((avg_gain > 0) | (avg_loss > 0), 50.0)
    return rsi.where(avg_gain.notna())


def _macd(close: pd.Series, fast: int, slow: int, signal: int) -> tuple[pd.Series, pd.Series]:
    main = _ema(close, fast) - _ema(close, slow)
    return main, _ema(main, signal)


def _atr(df: pd.DataFrame, period: int) -> pd.Series:
    high = df["high"].astype(float)
    low = df["low"].astype(float)
    close = df["close"].astype(float)
    prev_close = close.shift(1)
    tr_components = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    )
    tr = tr_components.max(axis=1)
    return tr.rolling(window=period, min_periods=period).mean()
