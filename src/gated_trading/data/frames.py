"""OHLCV frame loading and normalization."""

from __future__ import annotations

from pathlib import Path

import pandas as pd  # type: ignore[import-untyped]

_REQUIRED_COLUMNS = [
    "open_time",
    "open",
    "high",
    "low",
    "close",
    "volume",
    "close_time",
]


def load_ohlcv_csv(path: Path) -> pd.DataFrame:
    """Load OHLCV data from CSV and normalize schema."""
    df = pd.read_csv(path)
    return normalize_ohlcv(df)


def normalize_ohlcv(df: pd.DataFrame) -> pd.DataFrame:
    """Validate/normalize dataframe to the expected OHLCV shape."""
    missing = [col for col in _REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"missing_ohlcv_columns: {','.join(missing)}")

    normalized = df[_REQUIRED_COLUMNS].copy()
    normalized["open_time"] = pd.to_datetime(normalized["open_time"], utc=True)
    normalized["close_time"] = pd.to_datetime(normalized["close_time"], utc=True)
    numeric_cols = ["open", "high", "low", "close", "volume"]
    for col in numeric_cols:
        normalized[col] = pd.to_numeric(normalized[col], errors="coerce")

    normalized = normalized.dropna(subset=numeric_cols + ["open_time", "close_time"])
    normalized = normalized.sort_values("open_time").reset_index(drop=True)
    if normalized.empty:
        raise ValueError("normalized_ohlcv_empty")
    return normalized
