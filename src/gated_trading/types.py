"""Shared domain types for the decision pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union

Side = Literal["LONG", "SHORT"]


class Signal(str, Enum):
    """Directional vote."""

    BUY = "BUY"
    SELL = "SELL"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True, slots=True)
class IndicatorSnapshot:
    """Indicator readings for one evaluation cycle."""

    rsi: float
    macd_main: float
    macd_signal: float
    fast_ma: float
    slow_ma: float
    price: float
    atr: float | None = None

    @property
    def macd_histogram(self) -> float:
        return self.macd_main - self.macd_signal

    def is_finite(self) -> bool:
        """True when every reading is a finite number."""
        values = [self.rsi, self.macd_main, self.macd_signal, self.fast_ma, self.slow_ma, self.price]
        if self.atr is not None:
            values.append(self.atr)
        return all(math.isfinite(v) for v in values)


@dataclass(frozen=True, slots=True)
class SignalVerdict:
    """Consensus direction plus a 0-100 composite strength."""

    direction: Signal
    strength: int


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Account metrics read once per cycle."""

    balance: float
    equity: float
    open_position_count: int


@dataclass(frozen=True, slots=True)
class PriceQuote:
    bid: float
    ask: float


@dataclass(frozen=True, slots=True)
class InstrumentEconomics:
    """Per-instrument tick economics and venue volume limits."""

    tick_value: float
    tick_size: float
    contract_size: float
    volume_min: float
    volume_max: float
    volume_step: float

    @property
    def point_value(self) -> float:
        """Money moved per point per lot."""
        if self.tick_size <= 0:
            return 0.0
        return self.tick_value * self.contract_size / self.tick_size


@dataclass(frozen=True, slots=True)
class SizingRequest:
    """Instrument economics plus the stop distance for one sizing call."""

    stop_distance_points: float
    tick_value: float
    tick_size: float
    contract_size: float
    volume_min: float
    volume_max: float
    volume_step: float

    @classmethod
    def from_economics(
        cls, economics: InstrumentEconomics, stop_distance_points: float
    ) -> "SizingRequest":
        return cls(
            stop_distance_points=stop_distance_points,
            tick_value=economics.tick_value,
            tick_size=economics.tick_size,
            contract_size=economics.contract_size,
            volume_min=economics.volume_min,
            volume_max=economics.volume_max,
            volume_step=economics.volume_step,
        )


@dataclass(frozen=True, slots=True)
class SizingResult:
    """Quantity accepted by every sizing gate, or the gate that rejected it."""

    qty: float
    reason: str | None = None

    @property
    def rejected(self) -> bool:
        return self.reason is not None

    @classmethod
    def reject(cls, reason: str) -> "SizingResult":
        return cls(qty=0.0, reason=reason)


@dataclass(frozen=True, slots=True)
class PositionInfo:
    """Open position as reported by the execution gateway."""

    ticket: int
    instrument: str
    side: Side
    qty: float
    entry_price: float
    stop: float
    target: float


@dataclass(frozen=True, slots=True)
class OrderHandle:
    ticket: int


@dataclass(frozen=True, slots=True)
class OpenLong:
    instrument: str
    qty: float
    stop: float
    target: float


@dataclass(frozen=True, slots=True)
class OpenShort:
    instrument: str
    qty: float
    stop: float
    target: float


@dataclass(frozen=True, slots=True)
class CloseAll:
    instrument: str
    reason: str


@dataclass(frozen=True, slots=True)
class ModifyStops:
    ticket: int
    stop: float
    target: float
    reason: str = ""


@dataclass(frozen=True, slots=True)
class Hold:
    reason: str


OrderIntent = Union[OpenLong, OpenShort, CloseAll, ModifyStops, Hold]


@dataclass(slots=True)
class CycleResult:
    """Outcome of one evaluation cycle."""

    status: str
    instrument: str
    intent: OrderIntent | None = None
    verdict: SignalVerdict | None = None
    drawdown_pct: float = 0.0
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0


@dataclass(slots=True)
class ClosedTrade:
    """Realised round trip."""

    ticket: int
    instrument: str
    side: Side
    qty: float
    entry_price: float
    exit_price: float
    reason: str
    pnl: float
    opened_at: str
    closed_at: str
