"""Configuration loading: environment / .env settings plus validated policy configs."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gated_trading.errors import ConfigRejected
from gated_trading.types import InstrumentEconomics


class LogFormat(str, Enum):
    """Log output format."""

    JSON = "json"
    CONSOLE = "console"


class RiskConfig(BaseModel):
    """Risk budget and circuit-breaker limits. Immutable once accepted."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    risk_percent_per_trade: float = Field(default=1.0, gt=0.0, le=5.0)
    max_drawdown_percent: float = Field(default=20.0, gt=0.0, le=100.0)
    reward_risk_ratio: float = Field(default=2.0, ge=0.5, le=10.0)
    max_open_positions: int = Field(default=1, ge=1, le=100)
    max_position_size_percent: float = Field(default=10.0, gt=0.0, le=100.0)
    use_equity_stop: bool = True
    min_equity_percent: float = Field(default=80.0, ge=10.0, le=100.0)


class ThresholdConfig(BaseModel):
    """Signal thresholds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    overbought: float = Field(default=70.0, ge=0.0, le=100.0)
    oversold: float = Field(default=30.0, ge=0.0, le=100.0)
    price_action_baseline: int = Field(default=34, ge=0, le=100)
    min_signal_strength: int = Field(default=0, ge=0, le=100)

    @model_validator(mode="after")
    def _check_band(self) -> "ThresholdConfig":
        if self.oversold >= self.overbought:
            raise ValueError("oversold must be below overbought")
        return self


class IndicatorPeriods(BaseModel):
    """Look-back windows for indicator computation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    rsi_period: int = Field(default=14, ge=2, le=200)
    macd_fast: int = Field(default=12, ge=2, le=200)
    macd_slow: int = Field(default=26, ge=3, le=400)
    macd_signal: int = Field(default=9, ge=2, le=200)
    fast_ma_period: int = Field(default=9, ge=1, le=400)
    slow_ma_period: int = Field(default=21, ge=2, le=800)
    ma_method: Literal["sma", "ema"] = "ema"
    atr_period: int = Field(default=14, ge=2, le=200)

    @model_validator(mode="after")
    def _check_ordering(self) -> "IndicatorPeriods":
        if self.macd_fast >= self.macd_slow:
            raise ValueError("macd_fast must be shorter than macd_slow")
        if self.fast_ma_period >= self.slow_ma_period:
            raise ValueError("fast_ma_period must be shorter than slow_ma_period")
        return self

    @property
    def min_history(self) -> int:
        """Bars needed before every indicator is defined."""
        return max(
            self.rsi_period + 1,
            self.macd_slow + self.macd_signal,
            self.slow_ma_period,
            self.atr_period + 1,
        )


class StrategyConfig(BaseModel):
    """Stop placement and open-position management rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    use_atr_stops: bool = True
    atr_multiplier: float = Field(default=2.0, gt=0.0, le=10.0)
    stop_loss_points: float = Field(default=500.0, gt=0.0)
    close_on_reversal: bool = True
    breakeven_trigger_r: float = Field(default=1.0, ge=0.0, le=10.0)
    use_trailing_stop: bool = False
    trailing_atr_multiplier: float = Field(default=3.0, gt=0.0, le=20.0)


def _rejected(kind: str, exc: ValidationError) -> ConfigRejected:
    fields = [".".join(str(part) for part in err["loc"]) or "__root__" for err in exc.errors()]
    return ConfigRejected(f"{kind}_rejected: {exc.errors()[0]['msg']}", fields=fields)


def load_risk_config(payload: Mapping[str, Any] | RiskConfig) -> RiskConfig:
    """Validate a risk config. Any out-of-range field rejects the whole config."""
    if isinstance(payload, RiskConfig):
        return payload
    try:
        return RiskConfig.model_validate(dict(payload))
    except ValidationError as exc:
        raise _rejected("risk_config", exc) from exc


def load_threshold_config(payload: Mapping[str, Any] | ThresholdConfig) -> ThresholdConfig:
    """Validate a threshold config. Any invalid field rejects the whole config."""
    if isinstance(payload, ThresholdConfig):
        return payload
    try:
        return ThresholdConfig.model_validate(dict(payload))
    except ValidationError as exc:
        raise _rejected("threshold_config", exc) from exc


class Settings(BaseSettings):
    """Process settings.

    Loaded from environment variables and the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== Instrument ====================
    instrument: str = Field(default="BTCUSDT", pattern=r"^[A-Z0-9]+$")
    kline_interval: Literal["1m", "5m", "15m", "1h", "4h", "1d"] = Field(
        default="1h",
        description="Bar interval driving one evaluation cycle",
    )
    kline_limit: int = Field(default=300, ge=50, le=1500)

    # ==================== Binance API ====================
    binance_api_key: str = Field(default="", description="Binance API Key")
    binance_api_secret: str = Field(default="", description="Binance API Secret")
    binance_testnet: bool = Field(default=True, description="Use the Binance testnet")

    # ==================== Risk ====================
    risk_percent_per_trade: float = Field(default=1.0, gt=0.0, le=5.0)
    max_drawdown_percent: float = Field(default=20.0, gt=0.0, le=100.0)
    reward_risk_ratio: float = Field(default=2.0, ge=0.5, le=10.0)
    max_open_positions: int = Field(default=1, ge=1, le=100)
    max_position_size_percent: float = Field(default=10.0, gt=0.0, le=100.0)
    use_equity_stop: bool = True
    min_equity_percent: float = Field(default=80.0, ge=10.0, le=100.0)

    # ==================== Signals ====================
    rsi_overbought: float = Field(default=70.0, ge=0.0, le=100.0)
    rsi_oversold: float = Field(default=30.0, ge=0.0, le=100.0)
    price_action_baseline: int = Field(default=34, ge=0, le=100)
    min_signal_strength: int = Field(default=0, ge=0, le=100)

    # ==================== Indicators ====================
    rsi_period: int = Field(default=14, ge=2, le=200)
    macd_fast: int = Field(default=12, ge=2, le=200)
    macd_slow: int = Field(default=26, ge=3, le=400)
    macd_signal: int = Field(default=9, ge=2, le=200)
    fast_ma_period: int = Field(default=9, ge=1, le=400)
    slow_ma_period: int = Field(default=21, ge=2, le=800)
    ma_method: Literal["sma", "ema"] = "ema"
    atr_period: int = Field(default=14, ge=2, le=200)

    # ==================== Stops / management ====================
    use_atr_stops: bool = True
    atr_multiplier: float = Field(default=2.0, gt=0.0, le=10.0)
    stop_loss_points: float = Field(default=500.0, gt=0.0)
    close_on_reversal: bool = True
    breakeven_trigger_r: float = Field(default=1.0, ge=0.0, le=10.0)
    use_trailing_stop: bool = False
    trailing_atr_multiplier: float = Field(default=3.0, gt=0.0, le=20.0)

    # ==================== Paper account ====================
    paper_initial_balance: float = Field(default=10_000.0, gt=0.0)
    paper_tick_value: float = Field(default=1.0, gt=0.0)
    paper_tick_size: float = Field(default=1.0, gt=0.0)
    paper_contract_size: float = Field(default=1.0, gt=0.0)
    paper_volume_min: float = Field(default=0.001, gt=0.0)
    paper_volume_max: float = Field(default=100.0, gt=0.0)
    paper_volume_step: float = Field(default=0.001, gt=0.0)
    paper_slippage_bps: float = Field(default=2.0, ge=0.0, le=100.0)

    # ==================== Logging ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="Log output format",
    )

    # ==================== Storage ====================
    journal_dir: Path = Field(
        default=Path("data/journal"),
        description="Directory for the JSONL journal and paper state",
    )

    @field_validator("journal_dir", mode="before")
    @classmethod
    def parse_journal_dir(cls, v: str | Path) -> Path:
        """Coerce strings to Path."""
        return Path(v) if isinstance(v, str) else v

    def ensure_directories(self) -> None:
        """Create the journal directory if needed."""
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    def risk_config(self) -> RiskConfig:
        return load_risk_config(
            {
                "risk_percent_per_trade": self.risk_percent_per_trade,
                "max_drawdown_percent": self.max_drawdown_percent,
                "reward_risk_ratio": self.reward_risk_ratio,
                "max_open_positions": self.max_open_positions,
                "max_position_size_percent": self.max_position_size_percent,
                "use_equity_stop": self.use_equity_stop,
                "min_equity_percent": self.min_equity_percent,
            }
        )

    def threshold_config(self) -> ThresholdConfig:
        return load_threshold_config(
            {
                "overbought": self.rsi_overbought,
                "oversold": self.rsi_oversold,
                "price_action_baseline": self.price_action_baseline,
                "min_signal_strength": self.min_signal_strength,
            }
        )

    def indicator_periods(self) -> IndicatorPeriods:
        try:
            return IndicatorPeriods(
                rsi_period=self.rsi_period,
                macd_fast=self.macd_fast,
                macd_slow=self.macd_slow,
                macd_signal=self.macd_signal,
                fast_ma_period=self.fast_ma_period,
                slow_ma_period=self.slow_ma_period,
                ma_method=self.ma_method,
                atr_period=self.atr_period,
            )
        except ValidationError as exc:
            raise _rejected("indicator_periods", exc) from exc

    def strategy_config(self) -> StrategyConfig:
        return StrategyConfig(
            use_atr_stops=self.use_atr_stops,
            atr_multiplier=self.atr_multiplier,
            stop_loss_points=self.stop_loss_points,
            close_on_reversal=self.close_on_reversal,
            breakeven_trigger_r=self.breakeven_trigger_r,
            use_trailing_stop=self.use_trailing_stop,
            trailing_atr_multiplier=self.trailing_atr_multiplier,
        )

    def paper_economics(self) -> InstrumentEconomics:
        return InstrumentEconomics(
            tick_value=self.paper_tick_value,
            tick_size=self.paper_tick_size,
            contract_size=self.paper_contract_size,
            volume_min=self.paper_volume_min,
            volume_max=self.paper_volume_max,
            volume_step=self.paper_volume_step,
        )

    def validate_for_live_feed(self) -> list[str]:
        """Return missing settings required to read Binance market data."""
        missing = []
        if not self.binance_api_key:
            missing.append("BINANCE_API_KEY")
        if not self.binance_api_secret:
            missing.append("BINANCE_API_SECRET")
        return missing


# Lazily created process-wide instance, used by the CLI.
_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from the environment."""
    global _settings
    _settings = Settings()
    return _settings
