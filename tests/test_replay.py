from __future__ import annotations

import json
import math
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pandas as pd
import pytest

from gated_trading.backtest import ReplayConfig, run_replay, write_replay_artifacts
from gated_trading.backtest.metrics import max_drawdown_with_recovery
from gated_trading.config import Settings


def _build_wave(rows: int) -> pd.DataFrame:
    start = datetime(2024, 1, 1, tzinfo=UTC)
    times = [start + timedelta(hours=i) for i in range(rows)]
    closes = [1_000.0 + 80.0 * math.sin(i / 12.0) + 0.5 * i for i in range(rows)]
    return pd.DataFrame(
        {
            "open_time": times,
            "open": closes,
            "high": [c + 6 for c in closes],
            "low": [c - 6 for c in closes],
            "close": closes,
            "volume": [10.0 for _ in range(rows)],
            "close_time": [t + timedelta(hours=1) for t in times],
        }
    )


def test_replay_covers_every_bar(tmp_path: Path) -> None:
    settings = Settings(journal_dir=tmp_path / "journal")
    report = run_replay(settings, _build_wave(300), config=ReplayConfig(spread_points=2.0))

    assert report.bars == 300
    assert sum(report.status_counts.values()) == 300
    assert report.status_counts["skipped_stale"] >= settings.indicator_periods().min_history - 1
    assert len(report.equity_curve) in (300, 301)
    assert set(report.metrics) == {
        "trade_count",
        "total_return_pct",
        "max_drawdown_pct",
        "max_drawdown_recovery_bars",
        "expectancy_per_trade",
        "win_rate_pct",
    }
    assert report.metrics["trade_count"] == len(report.trades)

    out = tmp_path / "artifacts"
    write_replay_artifacts(out, report)
    assert (out / "trades.csv").exists()
    assert (out / "equity_curve.csv").exists()
    summary = json.loads((out / "summary.json").read_text(encoding="utf-8"))
    assert summary["bars"] == 300


def test_replay_rejects_missing_columns() -> None:
    df = _build_wave(50).drop(columns=["close_time"])
    with pytest.raises(ValueError):
        run_replay(Settings(), df)


def test_max_drawdown_with_recovery() -> None:
    drawdown, recovery = max_drawdown_with_recovery([100.0, 120.0, 90.0, 110.0, 125.0])
    assert drawdown == pytest.approx(25.0)
    assert recovery == 2

    _, never = max_drawdown_with_recovery([100.0, 80.0, 90.0])
    assert never is None
