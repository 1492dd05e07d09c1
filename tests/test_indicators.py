from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pandas as pd
import pytest

from gated_trading.config import IndicatorPeriods, ThresholdConfig
from gated_trading.errors import StaleDataError
from gated_trading.features.indicators import compute_indicator_snapshot
from gated_trading.strategy.signals import evaluate
from gated_trading.types import Signal


def _build_ohlcv(rows: int, step_hours: int, start_price: float, drift: float) -> pd.DataFrame:
    now = datetime.now(UTC)
    times = [now + timedelta(hours=i * step_hours) for i in range(rows)]
    closes = [start_price + i * drift for i in range(rows)]
    return pd.DataFrame(
        {
            "open_time": times,
            "open": closes,
            "high": [c + 20 for c in closes],
            "low": [c - 20 for c in closes],
            "close": closes,
            "volume": [1000.0 for _ in range(rows)],
            "close_time": [t + timedelta(hours=step_hours) for t in times],
        }
    )


def test_snapshot_on_uptrend() -> None:
    df = _build_ohlcv(rows=200, step_hours=1, start_price=40_000, drift=3)
    snapshot = compute_indicator_snapshot(df)

    assert snapshot.price == pytest.approx(40_000 + 199 * 3)
    assert snapshot.fast_ma > snapshot.slow_ma
    assert snapshot.macd_main > 0
    assert snapshot.rsi == pytest.approx(100.0)
    assert snapshot.atr == pytest.approx(40.0)
    assert evaluate(snapshot, ThresholdConfig()).direction is Signal.BUY


def test_snapshot_on_flat_market_is_neutral() -> None:
    df = _build_ohlcv(rows=120, step_hours=1, start_price=100, drift=0)
    snapshot = compute_indicator_snapshot(df, IndicatorPeriods(ma_method="sma"))

    assert snapshot.rsi == pytest.approx(50.0)
    assert snapshot.macd_main == pytest.approx(0.0)
    assert evaluate(snapshot, ThresholdConfig()).direction is Signal.NEUTRAL


def test_insufficient_history_is_stale() -> None:
    df = _build_ohlcv(rows=20, step_hours=1, start_price=100, drift=1)
    with pytest.raises(StaleDataError):
        compute_indicator_snapshot(df)


def test_unsorted_bars_are_stale() -> None:
    df = _build_ohlcv(rows=100, step_hours=1, start_price=100, drift=1)
    with pytest.raises(StaleDataError):
        compute_indicator_snapshot(df.iloc[::-1].reset_index(drop=True))
