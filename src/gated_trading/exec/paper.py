"""Paper execution gateway with optional persistent local state."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gated_trading.errors import ExecutionError
from gated_trading.risk.sizing import floor_to_step
from gated_trading.types import (
    AccountSnapshot,
    ClosedTrade,
    InstrumentEconomics,
    OpenLong,
    OpenShort,
    OrderHandle,
    OrderIntent,
    PositionInfo,
    PriceQuote,
    Side,
)
from gated_trading.utils.logging import get_logger


@dataclass(slots=True)
class _PaperPosition:
    ticket: int
    instrument: str
    side: Side
    qty: float
    entry_price: float
    stop: float
    target: float
    opened_at: str


@dataclass(slots=True)
class _PaperState:
    balance: float
    initial_balance: float
    next_ticket: int
    positions: list[_PaperPosition] = field(default_factory=list)
    closed_trades: list[ClosedTrade] = field(default_factory=list)


class PaperGateway:
    """Simulated venue: fills at the marked quote plus slippage.

    Stops and targets trigger on `mark`; when both are touched inside one
    bar the stop wins.
    """

    def __init__(
        self,
        economics: InstrumentEconomics,
        *,
        state_file: Path | None = None,
        initial_balance: float = 10_000.0,
        slippage_bps: float = 2.0,
    ) -> None:
        self._economics = economics
        self._state_file = state_file
        self._slippage_bps = slippage_bps
        self._quotes: dict[str, PriceQuote] = {}
        self._now: str | None = None
        self._logger = get_logger("gated_trading.exec.paper")
        self._state = self._load_state(initial_balance)

    @property
    def balance(self) -> float:
        return self._state.balance

    @property
    def closed_trades(self) -> list[ClosedTrade]:
        return list(self._state.closed_trades)

    def mark(
        self,
        instrument: str,
        bid: float,
        ask: float,
        *,
        high: float | None = None,
        low: float | None = None,
        timestamp: str | None = None,
    ) -> list[ClosedTrade]:
        """Update the quote and trigger any stop/target touched since the last mark."""
        if bid <= 0 or ask <= 0 or ask < bid:
            raise ValueError("invalid_quote")
        self._quotes[instrument] = PriceQuote(bid=bid, ask=ask)
        self._now = timestamp
        bar_high = max(ask, high) if high is not None else ask
        bar_low = min(bid, low) if low is not None else bid

        closed: list[ClosedTrade] = []
        for position in [p for p in self._state.positions if p.instrument == instrument]:
            if position.side == "LONG":
                if bar_low <= position.stop:
                    closed.append(self._close(position, position.stop, "stop_loss"))
                elif position.target > 0 and bar_high >= position.target:
                    closed.append(self._close(position, position.target, "take_profit"))
            else:
                if bar_high >= position.stop:
                    closed.append(self._close(position, position.stop, "stop_loss"))
                elif position.target > 0 and bar_low <= position.target:
                    closed.append(self._close(position, position.target, "take_profit"))
        if closed:
            self._persist()
        return closed

    def account_snapshot(self) -> AccountSnapshot:
        unrealized = sum(self._unrealized(p) for p in self._state.positions)
        return AccountSnapshot(
            balance=self._state.balance,
            equity=self._state.balance + unrealized,
            open_position_count=len(self._state.positions),
        )

    def instrument_economics(self, instrument: str) -> InstrumentEconomics:
        return self._economics

    def open_positions_count(self, instrument: str | None = None) -> int:
        if instrument is None:
            return len(self._state.positions)
        return sum(1 for p in self._state.positions if p.instrument == instrument)

    def open_positions(self, instrument: str) -> list[PositionInfo]:
        return [
            PositionInfo(
                ticket=p.ticket,
                instrument=p.instrument,
                side=p.side,
                qty=p.qty,
                entry_price=p.entry_price,
                stop=p.stop,
                target=p.target,
            )
            for p in self._state.positions
            if p.instrument == instrument
        ]

    def submit(self, intent: OrderIntent) -> OrderHandle:
        """Open a position for an OpenLong/OpenShort intent."""
        if not isinstance(intent, (OpenLong, OpenShort)):
            raise ExecutionError(f"unsupported_intent: {type(intent).__name__}")
        self._check_volume(intent.qty)
        quote = self._quote(intent.instrument)
        slip = self._slippage_bps / 10_000.0
        side: Side = "LONG" if isinstance(intent, OpenLong) else "SHORT"
        fill_price = quote.ask * (1.0 + slip) if side == "LONG" else quote.bid * (1.0 - slip)

        position = _PaperPosition(
            ticket=self._state.next_ticket,
            instrument=intent.instrument,
            side=side,
            qty=float(intent.qty),
            entry_price=float(fill_price),
            stop=float(intent.stop),
            target=float(intent.target),
            opened_at=self._timestamp(),
        )
        self._state.next_ticket += 1
        self._state.positions.append(position)
        self._persist()
        self._logger.info(
            "paper_fill",
            ticket=position.ticket,
            instrument=position.instrument,
            side=side,
            qty=position.qty,
            price=position.entry_price,
        )
        return OrderHandle(ticket=position.ticket)

    def modify(self, ticket: int, stop: float, target: float) -> bool:
        for position in self._state.positions:
            if position.ticket == ticket:
                position.stop = float(stop)
                position.target = float(target)
                self._persist()
                return True
        return False

    def close(self, instrument: str) -> bool:
        """Close every position of instrument at the current quote."""
        targets = [p for p in self._state.positions if p.instrument == instrument]
        if not targets:
            return True
        quote = self._quote(instrument)
        slip = self._slippage_bps / 10_000.0
        for position in targets:
            if position.side == "LONG":
                exit_price = quote.bid * (1.0 - slip)
            else:
                exit_price = quote.ask * (1.0 + slip)
            self._close(position, exit_price, "close_all")
        self._persist()
        return True

    def _close(self, position: _PaperPosition, exit_price: float, reason: str) -> ClosedTrade:
        pnl = self._pnl(position, exit_price)
        self._state.balance += pnl
        self._state.positions.remove(position)
        trade = ClosedTrade(
            ticket=position.ticket,
            instrument=position.instrument,
            side=position.side,
            qty=position.qty,
            entry_price=position.entry_price,
            exit_price=float(exit_price),
            reason=reason,
            pnl=float(pnl),
            opened_at=position.opened_at,
            closed_at=self._timestamp(),
        )
        self._state.closed_trades.append(trade)
        self._logger.info(
            "paper_close",
            ticket=trade.ticket,
            reason=reason,
            price=trade.exit_price,
            pnl=trade.pnl,
        )
        return trade

    def _pnl(self, position: _PaperPosition, exit_price: float) -> float:
        sign = 1.0 if position.side == "LONG" else -1.0
        points = (exit_price - position.entry_price) * sign / self._economics.tick_size
        return points * self._economics.point_value * position.qty

    def _unrealized(self, position: _PaperPosition) -> float:
        quote = self._quotes.get(position.instrument)
        if quote is None:
            return 0.0
        mark_price = quote.bid if position.side == "LONG" else quote.ask
        return self._pnl(position, mark_price)

    def _quote(self, instrument: str) -> PriceQuote:
        quote = self._quotes.get(instrument)
        if quote is None:
            raise ExecutionError(f"no_quote: {instrument}")
        return quote

    def _check_volume(self, qty: float) -> None:
        econ = self._economics
        if qty < econ.volume_min or qty > econ.volume_max:
            raise ExecutionError(f"volume_out_of_range: {qty}")
        if abs(floor_to_step(qty, econ.volume_step) - qty) > econ.volume_step * 1e-6:
            raise ExecutionError(f"volume_not_step_multiple: {qty}")

    def _timestamp(self) -> str:
        return self._now or datetime.now(timezone.utc).isoformat()

    def _load_state(self, initial_balance: float) -> _PaperState:
        if self._state_file is None or not self._state_file.exists():
            return _PaperState(
                balance=initial_balance,
                initial_balance=initial_balance,
                next_ticket=1,
            )

        raw = json.loads(self._state_file.read_text(encoding="utf-8"))
        return _PaperState(
            balance=float(raw.get("balance", initial_balance)),
            initial_balance=float(raw.get("initial_balance", initial_balance)),
            next_ticket=int(raw.get("next_ticket", 1)),
            positions=[_PaperPosition(**p) for p in raw.get("positions", [])],
            closed_trades=[ClosedTrade(**t) for t in raw.get("closed_trades", [])],
        )

    def _persist(self) -> None:
        if self._state_file is None:
            return
        payload: dict[str, Any] = {
            "balance": self._state.balance,
            "initial_balance": self._state.initial_balance,
            "next_ticket": self._state.next_ticket,
            "positions": [asdict(p) for p in self._state.positions],
            "closed_trades": [asdict(t) for t in self._state.closed_trades],
        }
        serialized = json.dumps(payload, ensure_ascii=True, indent=2)
        self._state_file.write_text(serialized, encoding="utf-8")
