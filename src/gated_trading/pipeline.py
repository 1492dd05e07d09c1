"""Per-instrument decision pipeline: signal -> risk gate -> sizing -> order intent."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import asdict
from time import perf_counter
from typing import Any

from gated_trading.config import (
    RiskConfig,
    StrategyConfig,
    ThresholdConfig,
    load_risk_config,
    load_threshold_config,
)
from gated_trading.errors import ConfigRejected, ExecutionError, StaleDataError
from gated_trading.exec.gateway import ExecutionGateway, LogSink, MarketDataFeed
from gated_trading.risk.sizing import (
    PositionSizer,
    calculate_take_profit,
    step_decimals,
    stop_distance_points,
    stop_from_atr,
)
from gated_trading.risk.state import RiskState
from gated_trading.strategy import signals
from gated_trading.types import (
    AccountSnapshot,
    CloseAll,
    CycleResult,
    Hold,
    IndicatorSnapshot,
    ModifyStops,
    OpenLong,
    OpenShort,
    OrderIntent,
    PositionInfo,
    Side,
    Signal,
    SignalVerdict,
    SizingRequest,
)
from gated_trading.utils.logging import (
    get_logger,
    log_order_intent,
    log_risk_event,
    log_sizing_rejected,
    log_trade_signal,
)

# Absorbs float noise when snapping a fill price to the tick grid.
_TICK_EPS = 1e-9


class DecisionPipeline:
    """Runs evaluation cycles for one instrument.

    Owns its RiskState and PositionSizer; nothing is shared across
    instruments. Position state is never assumed from an emitted intent,
    only read back from the gateway on the next cycle.
    """

    def __init__(
        self,
        *,
        instrument: str,
        feed: MarketDataFeed,
        gateway: ExecutionGateway,
        risk_config: RiskConfig,
        thresholds: ThresholdConfig,
        strategy: StrategyConfig | None = None,
        sink: LogSink | None = None,
    ) -> None:
        self.instrument = instrument
        self._feed = feed
        self._gateway = gateway
        self._sink = sink
        self._risk_config = risk_config
        self._thresholds = thresholds
        self._strategy = strategy or StrategyConfig()
        self.risk_state = RiskState(gateway, instrument)
        self.sizer = PositionSizer(self.risk_state)
        self._logger = get_logger("gated_trading.pipeline").bind(instrument=instrument)

    @property
    def risk_config(self) -> RiskConfig:
        return self._risk_config

    @property
    def thresholds(self) -> ThresholdConfig:
        return self._thresholds

    def reconfigure(
        self,
        *,
        risk: Mapping[str, Any] | RiskConfig | None = None,
        thresholds: Mapping[str, Any] | ThresholdConfig | None = None,
    ) -> None:
        """Swap configs atomically. On ConfigRejected the current configs stay."""
        try:
            new_risk = load_risk_config(risk) if risk is not None else self._risk_config
            new_thresholds = (
                load_threshold_config(thresholds) if thresholds is not None else self._thresholds
            )
        except ConfigRejected as exc:
            self._logger.warning("config_rejected", error=str(exc), fields=exc.fields)
            self._record("warning", "config_rejected", {"error": str(exc), "fields": exc.fields})
            raise
        self._risk_config = new_risk
        self._thresholds = new_thresholds
        self._logger.info("config_applied")

    def start_session(self, account: AccountSnapshot | None = None) -> None:
        """Begin a new session: initial balance and peak come from the current account."""
        if account is None:
            account = self._gateway.account_snapshot()
        self.risk_state.initialize(account.balance, account.equity)
        self._record(
            "info",
            "session_start",
            {"balance": account.balance, "equity": account.equity},
        )

    def run_cycle(self, *, dry_run: bool = False) -> CycleResult:
        """Evaluate once and hand the intent to the gateway. Never raises."""
        started = perf_counter()
        try:
            result = self.evaluate()
            intent = result.intent
            if not dry_run and intent is not None and not isinstance(intent, Hold):
                if not self.dispatch(intent):
                    result.status = "execution_uncertain"
                    result.warnings.append("execution_uncertain")
        except Exception as exc:  # noqa: BLE001 - top-level guard for loop resilience.
            self._logger.exception("pipeline_failed", error=str(exc))
            self._record("error", "pipeline_failed", {"error": str(exc)})
            result = CycleResult(status="failed", instrument=self.instrument)
        return self._finish(result, started)

    def evaluate(self) -> CycleResult:
        """Decide this cycle's intent without touching the venue."""
        result = CycleResult(status="unknown", instrument=self.instrument)
        try:
            snapshot = self._feed.latest_indicator_snapshot(self.instrument)
            if snapshot is None or not snapshot.is_finite():
                raise StaleDataError("snapshot_missing_or_not_finite")
            account = self._gateway.account_snapshot()
        except (StaleDataError, ExecutionError) as exc:
            return _skipped(result, exc, self._logger)

        if not self.risk_state.initialized:
            self.start_session(account)
        self.risk_state.update_peak(account.equity)
        result.drawdown_pct = self.risk_state.current_drawdown_pct(account.equity)

        verdict = signals.evaluate(snapshot, self._thresholds)
        result.verdict = verdict
        log_trade_signal(
            self._logger,
            instrument=self.instrument,
            direction=verdict.direction.value,
            strength=verdict.strength,
        )

        try:
            positions = self._gateway.open_positions(self.instrument)
            if positions:
                result.intent, result.status = self._manage(positions, snapshot, verdict, account)
            else:
                result.intent, result.status = self._enter(snapshot, verdict, account)
        except (StaleDataError, ExecutionError) as exc:
            return _skipped(result, exc, self._logger)
        return result

    def dispatch(self, intent: OrderIntent) -> bool:
        """Hand an intent to the gateway. False means the outcome is not confirmed."""
        try:
            if isinstance(intent, (OpenLong, OpenShort)):
                handle = self._gateway.submit(intent)
                log_order_intent(
                    self._logger,
                    instrument=intent.instrument,
                    intent=type(intent).__name__,
                    quantity=intent.qty,
                    stop=intent.stop,
                    target=intent.target,
                    status="submitted",
                    ticket=handle.ticket,
                )
                return True
            if isinstance(intent, CloseAll):
                accepted = self._gateway.close(intent.instrument)
            elif isinstance(intent, ModifyStops):
                accepted = self._gateway.modify(intent.ticket, intent.stop, intent.target)
            else:
                return True
        except ExecutionError as exc:
            self._logger.warning("execution_failed", intent=type(intent).__name__, error=str(exc))
            self._record("warning", "execution_failed", {**_intent_payload(intent), "error": str(exc)})
            return False

        if not accepted:
            self._logger.warning("execution_not_confirmed", intent=type(intent).__name__)
            return False
        log_order_intent(
            self._logger,
            instrument=self.instrument,
            intent=type(intent).__name__,
            status="accepted",
        )
        return True

    def _enter(
        self,
        snapshot: IndicatorSnapshot,
        verdict: SignalVerdict,
        account: AccountSnapshot,
    ) -> tuple[OrderIntent, str]:
        config = self._risk_config
        if self.risk_state.is_max_drawdown_exceeded(account.equity, config):
            log_risk_event(
                self._logger,
                event_type="max_drawdown_exceeded",
                action="block_entries",
                equity=account.equity,
                peak_equity=self.risk_state.peak_equity,
            )
            return Hold("max_drawdown"), "circuit_breaker"
        if not self.risk_state.is_equity_healthy(account.equity, config):
            log_risk_event(
                self._logger,
                event_type="equity_floor_breached",
                action="block_entries",
                equity=account.equity,
                initial_balance=self.risk_state.initial_balance,
            )
            return Hold("equity_unhealthy"), "risk_blocked"
        if verdict.direction is Signal.NEUTRAL:
            return Hold("no_signal"), "no_signal"
        if verdict.strength < self._thresholds.min_signal_strength:
            return Hold("weak_signal"), "weak_signal"

        side: Side = "LONG" if verdict.direction is Signal.BUY else "SHORT"
        quote = self._feed.latest_price(self.instrument)
        entry = quote.ask if side == "LONG" else quote.bid
        economics = self._gateway.instrument_economics(self.instrument)
        stop = self._initial_stop(entry, snapshot, side, economics.tick_size)
        points = stop_distance_points(entry, stop, economics.tick_size) if stop is not None else 0.0

        sizing = self.sizer.compute_quantity(
            config,
            account,
            SizingRequest.from_economics(economics, points),
        )
        if sizing.rejected or stop is None:
            gate = sizing.reason or "invalid_stop_distance"
            log_sizing_rejected(
                self._logger,
                instrument=self.instrument,
                gate=gate,
                equity=account.equity,
                stop_distance_points=points,
            )
            self._record("warning", "sizing_rejected", {"gate": gate, "equity": account.equity})
            return Hold(f"sizing_rejected:{gate}"), "sizing_rejected"

        target = _round_to_tick(
            calculate_take_profit(entry, stop, config.reward_risk_ratio, side),
            economics.tick_size,
        )
        intent: OrderIntent
        if side == "LONG":
            intent = OpenLong(self.instrument, sizing.qty, stop, target)
        else:
            intent = OpenShort(self.instrument, sizing.qty, stop, target)
        self._record("info", "order_intent", _intent_payload(intent))
        return intent, "entry"

    def _manage(
        self,
        positions: list[PositionInfo],
        snapshot: IndicatorSnapshot,
        verdict: SignalVerdict,
        account: AccountSnapshot,
    ) -> tuple[OrderIntent, str]:
        if self.risk_state.is_max_drawdown_exceeded(account.equity, self._risk_config):
            log_risk_event(
                self._logger,
                event_type="max_drawdown_exceeded",
                action="close_all",
                equity=account.equity,
                peak_equity=self.risk_state.peak_equity,
            )
            intent: OrderIntent = CloseAll(self.instrument, "max_drawdown")
            self._record("warning", "order_intent", _intent_payload(intent))
            return intent, "circuit_breaker_close"

        if self._strategy.close_on_reversal and _is_reversal(positions[0].side, verdict):
            if verdict.strength >= self._thresholds.min_signal_strength:
                intent = CloseAll(self.instrument, "signal_reversal")
                self._record("info", "order_intent", _intent_payload(intent))
                return intent, "exit_reversal"

        quote = self._feed.latest_price(self.instrument)
        tick_size = self._gateway.instrument_economics(self.instrument).tick_size
        for position in positions:
            price = quote.bid if position.side == "LONG" else quote.ask
            adjusted = self._adjusted_stop(position, price, snapshot.atr, tick_size)
            if adjusted is None:
                continue
            new_stop, reason = adjusted
            intent = ModifyStops(position.ticket, new_stop, position.target, reason)
            self._record("info", "order_intent", _intent_payload(intent))
            return intent, "manage_stops"
        return Hold("in_position"), "in_position"

    def _initial_stop(
        self,
        entry: float,
        snapshot: IndicatorSnapshot,
        side: Side,
        tick_size: float,
    ) -> float | None:
        strategy = self._strategy
        if strategy.use_atr_stops and snapshot.atr is not None and snapshot.atr > 0:
            stop = stop_from_atr(entry, snapshot.atr, strategy.atr_multiplier, side)
        else:
            offset = strategy.stop_loss_points * tick_size
            stop = entry - offset if side == "LONG" else entry + offset
            if stop <= 0:
                stop = None
        if stop is None:
            return None
        return _round_to_tick(stop, tick_size)

    def _adjusted_stop(
        self,
        position: PositionInfo,
        price: float,
        atr: float | None,
        tick_size: float,
    ) -> tuple[float, str] | None:
        """Break-even first, then ATR trailing. Stops are tick-aligned and only ever tighten."""
        strategy = self._strategy
        sign = 1.0 if position.side == "LONG" else -1.0
        risk = (position.entry_price - position.stop) * sign
        favourable_move = (price - position.entry_price) * sign

        breakeven = _breakeven_level(position.entry_price, tick_size, position.side)
        if strategy.breakeven_trigger_r > 0 and (breakeven - position.stop) * sign > 0:
            if favourable_move >= strategy.breakeven_trigger_r * risk:
                return breakeven, "breakeven"

        if strategy.use_trailing_stop and atr is not None and atr > 0:
            trailed = stop_from_atr(price, atr, strategy.trailing_atr_multiplier, position.side)
            if trailed is not None:
                trailed = _round_to_tick(trailed, tick_size)
                if (trailed - position.stop) * sign > 0:
                    return trailed, "trailing"
        return None

    def _record(self, level: str, event: str, payload: dict[str, Any]) -> None:
        if self._sink is None:
            return
        try:
            self._sink.record(level, event, {"instrument": self.instrument, **payload})
        except Exception as exc:  # noqa: BLE001 - the sink must never fail a cycle.
            self._logger.warning("log_sink_failed", sink_event=event, error=str(exc))

    def _finish(self, result: CycleResult, started: float) -> CycleResult:
        result.elapsed_ms = (perf_counter() - started) * 1000
        self._record(
            "info",
            "cycle_end",
            {
                "status": result.status,
                "intent": _intent_payload(result.intent) if result.intent else None,
                "drawdown_pct": result.drawdown_pct,
                "elapsed_ms": result.elapsed_ms,
            },
        )
        return result


def _skipped(result: CycleResult, exc: Exception, logger: Any) -> CycleResult:
    """Mark the cycle as skipped on a failed read; no intent is emitted."""
    logger.info("cycle_skipped", reason=str(exc))
    result.status = "skipped_stale"
    result.intent = None
    result.warnings.append(f"stale_data: {exc}")
    return result


def _is_reversal(side: Side, verdict: SignalVerdict) -> bool:
    if side == "LONG":
        return verdict.direction is Signal.SELL
    return verdict.direction is Signal.BUY


def _round_to_tick(price: float, tick_size: float) -> float:
    if tick_size <= 0:
        return price
    return round(round(price / tick_size) * tick_size, step_decimals(tick_size))


def _breakeven_level(entry: float, tick_size: float, side: Side) -> float:
    """Entry price on the tick grid, rounded toward the loss side of the fill."""
    if tick_size <= 0:
        return entry
    ticks = entry / tick_size
    if side == "LONG":
        ticks = math.floor(ticks + _TICK_EPS)
    else:
        ticks = math.ceil(ticks - _TICK_EPS)
    return round(ticks * tick_size, step_decimals(tick_size))


def _intent_payload(intent: OrderIntent) -> dict[str, Any]:
    return {"type": type(intent).__name__, **asdict(intent)}
