"""Binance futures market data feed."""

from __future__ import annotations

import pandas as pd  # type: ignore[import-untyped]
from binance.client import Client  # type: ignore[import-untyped]
from binance.exceptions import BinanceAPIException, BinanceRequestException  # type: ignore[import-untyped]
from requests.exceptions import RequestException
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from gated_trading.config import IndicatorPeriods, Settings
from gated_trading.errors import StaleDataError
from gated_trading.features.indicators import compute_indicator_snapshot
from gated_trading.types import IndicatorSnapshot, PriceQuote
from gated_trading.utils.logging import get_logger

_TRANSIENT_ERRORS = (BinanceRequestException, RequestException)


class BinanceMarketFeed:
    """Read-only feed: closed klines -> indicator snapshot, book ticker -> quote."""

    _INTERVAL_MAP = {
        "1m": Client.KLINE_INTERVAL_1MINUTE,
        "5m": Client.KLINE_INTERVAL_5MINUTE,
        "15m": Client.KLINE_INTERVAL_15MINUTE,
        "1h": Client.KLINE_INTERVAL_1HOUR,
        "4h": Client.KLINE_INTERVAL_4HOUR,
        "1d": Client.KLINE_INTERVAL_1DAY,
    }

    def __init__(self, settings: Settings, periods: IndicatorPeriods | None = None) -> None:
        self._settings = settings
        self._periods = periods or settings.indicator_periods()
        self._logger = get_logger("gated_trading.data.binance")
        self._client = Client(
            api_key=settings.binance_api_key or None,
            api_secret=settings.binance_api_secret or None,
            testnet=settings.binance_testnet,
        )

    def latest_indicator_snapshot(self, instrument: str) -> IndicatorSnapshot:
        try:
            df = self.fetch_ohlcv(instrument, self._settings.kline_interval, self._settings.kline_limit)
        except (BinanceAPIException, *_TRANSIENT_ERRORS) as exc:
            self._logger.warning("kline_fetch_failed", instrument=instrument, error=str(exc))
            raise StaleDataError(f"kline_fetch_failed: {exc}") from exc
        # The last kline is still forming; evaluate on closed bars only.
        return compute_indicator_snapshot(df.iloc[:-1], self._periods)

    def latest_price(self, instrument: str) -> PriceQuote:
        try:
            payload = self._book_ticker(instrument)
        except (BinanceAPIException, *_TRANSIENT_ERRORS) as exc:
            raise StaleDataError(f"book_ticker_failed: {exc}") from exc
        return PriceQuote(bid=float(payload["bidPrice"]), ask=float(payload["askPrice"]))

    def fetch_ohlcv(self, symbol: str, interval: str, limit: int) -> pd.DataFrame:
        """Fetch futures klines and return normalized dataframe."""
        resolved_interval = self._INTERVAL_MAP.get(interval.lower())
        if resolved_interval is None:
            raise ValueError(f"unsupported_interval: {interval}")

        rows = self._klines(symbol, resolved_interval, limit)
        df = pd.DataFrame(
            rows,
            columns=[
                "open_time",
                "open",
                "high",
                "low",
                "close",
                "volume",
                "close_time",
                "quote_asset_volume",
                "number_of_trades",
                "taker_buy_base_asset_volume",
                "taker_buy_quote_asset_volume",
                "ignore",
            ],
        )
        if df.empty:
            raise StaleDataError("empty_ohlcv_response")

        numeric_cols = ["open", "high", "low", "close", "volume"]
        for col in numeric_cols:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        df["open_time"] = pd.to_datetime(df["open_time"], unit="ms", utc=True)
        df["close_time"] = pd.to_datetime(df["close_time"], unit="ms", utc=True)
        df = df.dropna(subset=numeric_cols).reset_index(drop=True)
        return df[["open_time", "open", "high", "low", "close", "volume", "close_time"]]

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _klines(self, symbol: str, interval: str, limit: int) -> list[list[object]]:
        return self._client.futures_klines(symbol=symbol, interval=interval, limit=limit)

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _book_ticker(self, symbol: str) -> dict[str, str]:
        return self._client.futures_orderbook_ticker(symbol=symbol)
