from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from gated_trading.config import (
    RiskConfig,
    Settings,
    ThresholdConfig,
    load_risk_config,
    load_threshold_config,
)
from gated_trading.errors import ConfigRejected


def test_default_settings_build_valid_configs(tmp_path: Path) -> None:
    settings = Settings(journal_dir=tmp_path)
    risk = settings.risk_config()
    thresholds = settings.threshold_config()
    assert risk.max_open_positions >= 1
    assert thresholds.price_action_baseline == 34
    assert settings.indicator_periods().min_history > 0
    assert settings.paper_economics().volume_step > 0


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("risk_percent_per_trade", 0.0),
        ("risk_percent_per_trade", 5.1),
        ("max_drawdown_percent", 0.0),
        ("max_drawdown_percent", 101.0),
        ("reward_risk_ratio", 0.4),
        ("reward_risk_ratio", 10.5),
        ("max_open_positions", 0),
        ("max_open_positions", 101),
        ("max_position_size_percent", 0.0),
        ("min_equity_percent", 9.0),
        ("min_equity_percent", 100.1),
    ],
)
def test_out_of_range_risk_field_rejects_whole_config(field: str, value: float) -> None:
    payload = {"risk_percent_per_trade": 1.0, "max_open_positions": 3, field: value}
    with pytest.raises(ConfigRejected) as excinfo:
        load_risk_config(payload)
    assert field in excinfo.value.fields


def test_unknown_risk_field_rejected() -> None:
    with pytest.raises(ConfigRejected):
        load_risk_config({"risk_percent_per_trade": 1.0, "leverage": 10})


def test_valid_risk_payload_accepted() -> None:
    config = load_risk_config({"risk_percent_per_trade": 5.0, "min_equity_percent": 10.0})
    assert config.risk_percent_per_trade == 5.0
    assert load_risk_config(config) is config


def test_risk_config_is_immutable() -> None:
    config = RiskConfig()
    with pytest.raises(ValidationError):
        config.risk_percent_per_trade = 2.0  # type: ignore[misc]


def test_threshold_band_must_be_ordered() -> None:
    with pytest.raises(ConfigRejected):
        load_threshold_config({"overbought": 30.0, "oversold": 70.0})
    assert load_threshold_config({"overbought": 80.0, "oversold": 20.0}) == ThresholdConfig(
        overbought=80.0, oversold=20.0
    )


def test_settings_read_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RISK_PERCENT_PER_TRADE", "2.5")
    monkeypatch.setenv("MAX_OPEN_POSITIONS", "4")
    settings = Settings(journal_dir=tmp_path)
    risk = settings.risk_config()
    assert risk.risk_percent_per_trade == 2.5
    assert risk.max_open_positions == 4


def test_indicator_period_ordering_rejected(tmp_path: Path) -> None:
    settings = Settings(journal_dir=tmp_path, macd_fast=30, macd_slow=26)
    with pytest.raises(ConfigRejected):
        settings.indicator_periods()
