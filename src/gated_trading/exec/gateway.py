"""Collaborator interfaces consumed by the decision pipeline."""

from __future__ import annotations

from typing import Any, Protocol

from gated_trading.types import (
    AccountSnapshot,
    IndicatorSnapshot,
    InstrumentEconomics,
    OrderHandle,
    OrderIntent,
    PositionInfo,
    PriceQuote,
)


class MarketDataFeed(Protocol):
    """Source of per-cycle indicator readings and quotes."""

    def latest_indicator_snapshot(self, instrument: str) -> IndicatorSnapshot:
        """Return the current snapshot, or raise StaleDataError."""

    def latest_price(self, instrument: str) -> PriceQuote:
        """Return the current best bid/ask."""


class ExecutionGateway(Protocol):
    """Account queries and order submission."""

    def account_snapshot(self) -> AccountSnapshot:
        """Return balance, equity and open-position count."""

    def instrument_economics(self, instrument: str) -> InstrumentEconomics:
        """Return tick economics and volume limits."""

    def open_positions_count(self, instrument: str | None = None) -> int:
        """Count open positions, optionally for one instrument."""

    def open_positions(self, instrument: str) -> list[PositionInfo]:
        """List open positions for one instrument."""

    def submit(self, intent: OrderIntent) -> OrderHandle:
        """Submit an open intent. Raises ExecutionError on failure."""

    def modify(self, ticket: int, stop: float, target: float) -> bool:
        """Move stop/target of an open position."""

    def close(self, instrument: str) -> bool:
        """Close every open position of an instrument."""


class LogSink(Protocol):
    """Append-only, fire-and-forget event sink."""

    def record(self, level: str, event: str, payload: dict[str, Any]) -> None:
        """Record one event. Must never raise."""
