from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

import pandas as pd
from click.testing import CliRunner

from gated_trading import __version__
from gated_trading.main import cli
from gated_trading.types import CycleResult


class _FakeRuntime:
    def __init__(self, settings: object) -> None:
        self.settings = settings

    def run_cycle(self, dry_run: bool) -> CycleResult:
        return CycleResult(status="no_signal", instrument="BTCUSDT", elapsed_ms=1.0)


def test_cli_once_smoke(monkeypatch: object) -> None:
    monkeypatch.setattr("gated_trading.main._PaperRuntime", _FakeRuntime)
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["once", "--dry-run"])
    assert result.exit_code == 0


def test_cli_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_replay_smoke() -> None:
    start = datetime(2024, 1, 1, tzinfo=UTC)
    times = [start + timedelta(hours=i) for i in range(120)]
    closes = [500.0 + 25.0 * math.sin(i / 8.0) for i in range(120)]
    df = pd.DataFrame(
        {
            "open_time": times,
            "open": closes,
            "high": [c + 3 for c in closes],
            "low": [c - 3 for c in closes],
            "close": closes,
            "volume": [1.0 for _ in range(120)],
            "close_time": [t + timedelta(hours=1) for t in times],
        }
    )
    runner = CliRunner()
    with runner.isolated_filesystem():
        df.to_csv("bars.csv", index=False)
        result = runner.invoke(cli, ["replay", "bars.csv", "-o", "out"])
        assert result.exit_code == 0
        assert "Bars: 120" in result.output
        assert "skipped_stale" in result.output
