"""Shared types for bar replay."""

from __future__ import annotations

from dataclasses import dataclass, field

from gated_trading.types import ClosedTrade


@dataclass(slots=True)
class ReplayConfig:
    """Runtime parameters for one replay."""

    spread_points: float = 0.0
    lookback_bars: int = 500


@dataclass(slots=True)
class EquityPoint:
    """Equity at one bar close."""

    timestamp: str
    equity: float


@dataclass(slots=True)
class ReplayReport:
    """Everything one replay produced."""

    instrument: str
    bars: int = 0
    equity_curve: list[EquityPoint] = field(default_factory=list)
    trades: list[ClosedTrade] = field(default_factory=list)
    status_counts: dict[str, int] = field(default_factory=dict)
    metrics: dict[str, float | int | None] = field(default_factory=dict)
