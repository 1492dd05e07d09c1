"""CLI entry point."""

import sys
import time
from datetime import datetime
from pathlib import Path
from typing import NoReturn

import click

from gated_trading import __version__
from gated_trading.backtest import ReplayConfig, load_ohlcv_csv, run_replay, write_replay_artifacts
from gated_trading.config import Settings, get_settings
from gated_trading.data.binance import BinanceMarketFeed
from gated_trading.errors import ConfigRejected, StaleDataError
from gated_trading.exec.paper import PaperGateway
from gated_trading.journal.store import JournalStore
from gated_trading.pipeline import DecisionPipeline
from gated_trading.types import CycleResult
from gated_trading.utils.logging import get_logger, setup_logging


class _PaperRuntime:
    """Live feed + paper account + journal around one pipeline."""

    def __init__(self, settings: Settings) -> None:
        self.instrument = settings.instrument
        self.feed = BinanceMarketFeed(settings)
        self.gateway = PaperGateway(
            settings.paper_economics(),
            state_file=settings.journal_dir / "paper_state.json",
            initial_balance=settings.paper_initial_balance,
            slippage_bps=settings.paper_slippage_bps,
        )
        self.pipeline = DecisionPipeline(
            instrument=settings.instrument,
            feed=self.feed,
            gateway=self.gateway,
            risk_config=settings.risk_config(),
            thresholds=settings.threshold_config(),
            strategy=settings.strategy_config(),
            sink=JournalStore(settings.journal_dir),
        )
        self._logger = get_logger("gated_trading.main")

    def run_cycle(self, dry_run: bool) -> CycleResult:
        try:
            quote = self.feed.latest_price(self.instrument)
            self.gateway.mark(self.instrument, quote.bid, quote.ask)
        except StaleDataError as exc:
            self._logger.warning("paper_mark_failed", error=str(exc))
        return self.pipeline.run_cycle(dry_run=dry_run)


def _load_settings() -> Settings:
    settings = get_settings()
    settings.ensure_directories()
    return settings


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="Show the version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Risk-gated trading decision pipeline.

    Signal consensus, equity/drawdown gating and risk-budget sizing
    against a paper account.
    """
    if version:
        click.echo(f"gated-trading version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Evaluate only; do not hand intents to the paper gateway",
)
def once(dry_run: bool) -> None:
    """Run a single evaluation cycle in a fresh session."""
    setup_logging()
    logger = get_logger("gated_trading.main")

    try:
        settings = _load_settings()
        logger.info(
            "starting_single_run",
            instrument=settings.instrument,
            dry_run=dry_run,
            timestamp=datetime.now().isoformat(),
        )
        result = _PaperRuntime(settings).run_cycle(dry_run)
        logger.info(
            "run_completed",
            status=result.status,
            intent=type(result.intent).__name__ if result.intent else None,
            elapsed_ms=round(result.elapsed_ms, 2),
            warnings=result.warnings,
        )
    except ConfigRejected as e:
        logger.error("config_rejected", error=str(e), fields=e.fields)
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("run_interrupted", message="User interrupted")
        sys.exit(0)
    except Exception as e:
        logger.exception("run_failed", error=str(e))
        sys.exit(1)


@cli.command()
@click.option(
    "--interval-min",
    "-i",
    type=int,
    default=60,
    help="Minutes between cycles",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Evaluate only; do not hand intents to the paper gateway",
)
def loop(interval_min: int, dry_run: bool) -> NoReturn:
    """Run evaluation cycles on a fixed interval within one session.

    Stop with Ctrl+C.
    """
    setup_logging()
    logger = get_logger("gated_trading.main")
    try:
        settings = _load_settings()
        runtime = _PaperRuntime(settings)
    except ConfigRejected as e:
        logger.error("config_rejected", error=str(e), fields=e.fields)
        sys.exit(2)

    logger.info(
        "starting_loop",
        instrument=settings.instrument,
        interval_min=interval_min,
        dry_run=dry_run,
    )

    iteration = 0
    interval_sec = interval_min * 60

    try:
        while True:
            iteration += 1
            result = runtime.run_cycle(dry_run)
            logger.info(
                "loop_iteration_completed",
                iteration=iteration,
                status=result.status,
                drawdown_pct=round(result.drawdown_pct, 4),
                elapsed_ms=round(result.elapsed_ms, 2),
                warnings=result.warnings,
            )
            time.sleep(interval_sec)

    except KeyboardInterrupt:
        logger.info(
            "loop_stopped",
            message="User stopped loop",
            total_iterations=iteration,
        )
        sys.exit(0)


@cli.command()
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Write trades, equity curve and summary here",
)
@click.option("--spread-points", type=float, default=0.0, help="Simulated bid/ask spread")
def replay(csv_path: Path, output_dir: Path | None, spread_points: float) -> None:
    """Replay historical OHLCV bars from CSV through the pipeline."""
    setup_logging()
    logger = get_logger("gated_trading.main")
    settings = get_settings()

    try:
        bars = load_ohlcv_csv(csv_path)
        report = run_replay(settings, bars, config=ReplayConfig(spread_points=spread_points))
    except (ConfigRejected, ValueError) as e:
        logger.error("replay_failed", error=str(e))
        sys.exit(1)

    if output_dir is not None:
        write_replay_artifacts(output_dir, report)

    click.echo(f"Instrument: {report.instrument}  Bars: {report.bars}")
    for key, value in report.metrics.items():
        click.echo(f"   {key}: {value}")
    click.echo("Cycle statuses:")
    for status, count in sorted(report.status_counts.items()):
        click.echo(f"   {status}: {count}")


@cli.command()
def status() -> None:
    """Show configuration summary and recent journal events."""
    setup_logging()
    settings = get_settings()

    click.echo("=" * 50)
    click.echo("gated-trading - Status")
    click.echo("=" * 50)
    click.echo()

    click.echo("[Instrument]")
    click.echo(f"   Symbol: {settings.instrument}")
    click.echo(f"   Interval: {settings.kline_interval}")
    binance_status = "[OK] Configured" if not settings.validate_for_live_feed() else "[--] Public only"
    click.echo(f"   Binance API: {binance_status}")
    click.echo(f"   Binance Testnet: {'Yes' if settings.binance_testnet else 'No'}")
    click.echo()

    click.echo("[Risk Parameters]")
    try:
        risk = settings.risk_config()
    except ConfigRejected as e:
        click.echo(f"   [ERROR] {e}")
    else:
        click.echo(f"   Risk per trade: {risk.risk_percent_per_trade}%")
        click.echo(f"   Max drawdown: {risk.max_drawdown_percent}%")
        click.echo(f"   Reward/risk: {risk.reward_risk_ratio}")
        click.echo(f"   Max open positions: {risk.max_open_positions}")
        click.echo(f"   Max position size: {risk.max_position_size_percent}%")
        equity_stop = f"{risk.min_equity_percent}%" if risk.use_equity_stop else "off"
        click.echo(f"   Equity floor: {equity_stop}")
    click.echo()

    click.echo("[Logging]")
    click.echo(f"   Log level: {settings.log_level}")
    click.echo(f"   Log format: {settings.log_format.value}")
    click.echo(f"   Journal dir: {settings.journal_dir}")
    click.echo()

    if settings.journal_dir.exists():
        events = JournalStore(settings.journal_dir).load_recent(5)
        click.echo("[Recent events]")
        for event in events:
            click.echo(f"   {event['timestamp']} {event['level']:<7} {event['event']}")
        click.echo()

    click.echo("=" * 50)


@cli.command()
def check() -> None:
    """Check dependencies and configuration."""
    setup_logging()
    logger = get_logger("gated_trading.main")

    click.echo("Checking system dependencies...")
    click.echo()

    all_ok = True

    packages = [
        ("pydantic", "Configuration validation"),
        ("pydantic_settings", "Environment settings"),
        ("pandas", "Data processing"),
        ("numpy", "Numerical computing"),
        ("structlog", "Structured logging"),
        ("click", "CLI framework"),
        ("tenacity", "Retry mechanism"),
        ("binance", "Binance market data"),
    ]

    for pkg_name, desc in packages:
        try:
            __import__(pkg_name)
            click.echo(f"  [OK] {pkg_name} - {desc}")
        except ImportError:
            click.echo(f"  [MISSING] {pkg_name} - {desc}")
            all_ok = False

    click.echo()

    env_file = Path(".env")
    if env_file.exists():
        click.echo("  [OK] .env configuration file exists")
    else:
        click.echo("  [WARN] .env file not found (using defaults)")

    try:
        settings = get_settings()
        settings.risk_config()
        settings.threshold_config()
        settings.indicator_periods()
        click.echo("  [OK] Risk, threshold and indicator settings valid")
    except ConfigRejected as e:
        click.echo(f"  [ERROR] {e}")
        all_ok = False

    click.echo()

    if all_ok:
        click.echo("[OK] All checks passed")
    else:
        click.echo("[ERROR] Some checks failed. Run: pip install -e .")

    logger.info("dependency_check_completed", all_ok=all_ok)


if __name__ == "__main__":
    cli()
