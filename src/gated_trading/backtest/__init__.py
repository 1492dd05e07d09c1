"""Backtest package exports."""

from gated_trading.backtest.metrics import compute_summary_metrics, max_drawdown_with_recovery
from gated_trading.backtest.replay import ReplayFeed, run_replay, write_replay_artifacts
from gated_trading.backtest.types import EquityPoint, ReplayConfig, ReplayReport
from gated_trading.data.frames import load_ohlcv_csv, normalize_ohlcv

__all__ = [
    "EquityPoint",
    "ReplayConfig",
    "ReplayFeed",
    "ReplayReport",
    "compute_summary_metrics",
    "load_ohlcv_csv",
    "max_drawdown_with_recovery",
    "normalize_ohlcv",
    "run_replay",
    "write_replay_artifacts",
]
