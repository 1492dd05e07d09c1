"""Session equity tracking: peak equity, drawdown and equity-floor health."""

from __future__ import annotations

from gated_trading.config import RiskConfig
from gated_trading.exec.gateway import ExecutionGateway
from gated_trading.utils.logging import get_logger, log_risk_event

# Returned when the gateway cannot be queried; blocks any new entry.
BLOCKING_POSITION_COUNT = 1_000_000


class RiskState:
    """Per-instrument session risk context.

    Owned by exactly one pipeline. Drawdown is measured from the session
    peak, while equity health is measured from the initial balance.
    """

    def __init__(self, gateway: ExecutionGateway, instrument: str | None = None) -> None:
        self._gateway = gateway
        self._instrument = instrument
        self._logger = get_logger("gated_trading.risk.state")
        self.initial_balance = 0.0
        self.peak_equity = 0.0
        self.initialized = False

    def initialize(self, balance: float, equity: float) -> None:
        """Start a new session from the current account values."""
        self.initial_balance = float(balance)
        self.peak_equity = float(equity)
        self.initialized = True
        self._logger.info(
            "risk_session_started",
            instrument=self._instrument,
            initial_balance=self.initial_balance,
            peak_equity=self.peak_equity,
        )

    def update_peak(self, current_equity: float) -> float:
        """Raise the peak to current_equity if higher. Never lowers it."""
        if current_equity > self.peak_equity:
            self.peak_equity = float(current_equity)
        return self.peak_equity

    def current_drawdown_pct(self, current_equity: float) -> float:
        if self.peak_equity <= 0:
            return 0.0
        drawdown = (self.peak_equity - current_equity) / self.peak_equity * 100.0
        return max(0.0, drawdown)

    def is_equity_healthy(self, current_equity: float, config: RiskConfig) -> bool:
        """Hard floor check against the session's initial balance."""
        if not config.use_equity_stop:
            return True
        floor = self.initial_balance * config.min_equity_percent / 100.0
        return current_equity >= floor

    def is_max_drawdown_exceeded(self, current_equity: float, config: RiskConfig) -> bool:
        """Soft breaker: drawdown from peak at or beyond the configured limit."""
        return self.current_drawdown_pct(current_equity) >= config.max_drawdown_percent

    def open_positions_count(self) -> int:
        try:
            return int(self._gateway.open_positions_count(self._instrument))
        except Exception as exc:  # noqa: BLE001 - queries degrade instead of raising.
            log_risk_event(
                self._logger,
                event_type="position_count_unavailable",
                action="block_entries",
                instrument=self._instrument,
                error=str(exc),
            )
            return BLOCKING_POSITION_COUNT
