"""Bar-by-bar replay of historical OHLCV through the decision pipeline."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

import pandas as pd  # type: ignore[import-untyped]

from gated_trading.backtest.metrics import compute_summary_metrics
from gated_trading.backtest.types import EquityPoint, ReplayConfig, ReplayReport
from gated_trading.config import IndicatorPeriods, Settings
from gated_trading.data.frames import normalize_ohlcv
from gated_trading.errors import StaleDataError
from gated_trading.exec.paper import PaperGateway
from gated_trading.features.indicators import compute_indicator_snapshot
from gated_trading.pipeline import DecisionPipeline
from gated_trading.types import IndicatorSnapshot, PriceQuote
from gated_trading.utils.logging import get_logger


class ReplayFeed:
    """Market data feed positioned on one historical bar at a time."""

    def __init__(
        self,
        df: pd.DataFrame,
        periods: IndicatorPeriods,
        *,
        half_spread: float = 0.0,
        lookback_bars: int = 500,
    ) -> None:
        self._df = df
        self._periods = periods
        self._half_spread = half_spread
        self._lookback = max(lookback_bars, periods.min_history)
        self._cursor = -1

    def advance(self, index: int) -> None:
        if not 0 <= index < len(self._df):
            raise IndexError("replay_cursor_out_of_range")
        self._cursor = index

    def latest_indicator_snapshot(self, instrument: str) -> IndicatorSnapshot:
        if self._cursor < 0:
            raise StaleDataError("replay_not_started")
        start = max(0, self._cursor + 1 - self._lookback)
        return compute_indicator_snapshot(self._df.iloc[start : self._cursor + 1], self._periods)

    def latest_price(self, instrument: str) -> PriceQuote:
        if self._cursor < 0:
            raise StaleDataError("replay_not_started")
        close = float(self._df["close"].iloc[self._cursor])
        return PriceQuote(bid=close - self._half_spread, ask=close + self._half_spread)


def run_replay(
    settings: Settings,
    df: pd.DataFrame,
    *,
    config: ReplayConfig | None = None,
) -> ReplayReport:
    """Replay every bar through one pipeline backed by an in-memory paper account."""
    config = config or ReplayConfig()
    logger = get_logger("gated_trading.backtest.replay")
    bars = normalize_ohlcv(df)
    instrument = settings.instrument
    economics = settings.paper_economics()

    feed = ReplayFeed(
        bars,
        settings.indicator_periods(),
        half_spread=config.spread_points * economics.tick_size / 2.0,
        lookback_bars=config.lookback_bars,
    )
    gateway = PaperGateway(
        economics,
        initial_balance=settings.paper_initial_balance,
        slippage_bps=settings.paper_slippage_bps,
    )
    pipeline = DecisionPipeline(
        instrument=instrument,
        feed=feed,
        gateway=gateway,
        risk_config=settings.risk_config(),
        thresholds=settings.threshold_config(),
        strategy=settings.strategy_config(),
    )
    report = ReplayReport(instrument=instrument, bars=len(bars))

    for idx in range(len(bars)):
        row = bars.iloc[idx]
        timestamp = pd.Timestamp(row["close_time"]).isoformat()
        feed.advance(idx)
        quote = feed.latest_price(instrument)
        gateway.mark(
            instrument,
            quote.bid,
            quote.ask,
            high=float(row["high"]),
            low=float(row["low"]),
            timestamp=timestamp,
        )
        result = pipeline.run_cycle()
        report.status_counts[result.status] = report.status_counts.get(result.status, 0) + 1
        report.equity_curve.append(
            EquityPoint(timestamp=timestamp, equity=gateway.account_snapshot().equity)
        )

    if gateway.open_positions_count(instrument) > 0:
        gateway.close(instrument)
        report.equity_curve.append(
            EquityPoint(
                timestamp=report.equity_curve[-1].timestamp,
                equity=gateway.account_snapshot().equity,
            )
        )

    report.trades = gateway.closed_trades
    report.metrics = compute_summary_metrics(report.equity_curve, report.trades)
    logger.info("replay_completed", instrument=instrument, bars=report.bars, **report.metrics)
    return report


def write_replay_artifacts(output_dir: Path, report: ReplayReport) -> None:
    """Persist trades, equity curve and summary."""
    output_dir.mkdir(parents=True, exist_ok=True)
    pd.DataFrame([asdict(trade) for trade in report.trades]).to_csv(
        output_dir / "trades.csv",
        index=False,
    )
    pd.DataFrame([asdict(point) for point in report.equity_curve]).to_csv(
        output_dir / "equity_curve.csv",
        index=False,
    )
    summary = {
        "instrument": report.instrument,
        "bars": report.bars,
        "status_counts": report.status_counts,
        "metrics": report.metrics,
    }
    (output_dir / "summary.json").write_text(
        json.dumps(summary, ensure_ascii=True, indent=2),
        encoding="utf-8",
    )
