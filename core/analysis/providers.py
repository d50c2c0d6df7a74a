"""
File-backed data provider.

Layout under ``data_dir``::

    <SYMBOL>.json   indicator snapshot (snake_case or camelCase keys)
    <SYMBOL>.csv    daily candles: timestamp|date, open, high, low, close[, volume]

A ``date`` column is read as the market-local session date.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from utils import market_hours
from utils.logger import get_logger
from .models import Candle, IndicatorSnapshot
from .pipeline import DataProvider

log = get_logger("provider")

_OHLC = ["open", "high", "low", "close"]


def load_snapshot(path: Union[str, Path]) -> IndicatorSnapshot:
    with open(path, "r", encoding="utf-8") as f:
        return IndicatorSnapshot.from_mapping(json.load(f))


def read_candles_csv(path: Union[str, Path]) -> list[Candle]:
    """Parse a candle CSV into Candles; rows with missing OHLC are dropped."""
    df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in _OHLC if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing columns {missing}")

    if "timestamp" in df.columns:
        ts = pd.to_numeric(df["timestamp"], errors="coerce")
    elif "date" in df.columns:
        local = pd.to_datetime(df["date"], errors="coerce").dt.tz_localize(market_hours.MARKET_TZ)
        ts = (local - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(seconds=1)
    else:
        raise ValueError(f"{path}: need a 'timestamp' or 'date' column")

    df = df.assign(timestamp=ts)
    df["volume"] = df["volume"].fillna(0.0) if "volume" in df.columns else 0.0
    before = len(df)
    df = df.dropna(subset=["timestamp"] + _OHLC)
    if len(df) < before:
        log.warning(f"{path}: dropped {before - len(df)} incomplete candle rows")

    return [Candle.from_mapping(row) for row in df.sort_values("timestamp").to_dict("records")]


class FileDataProvider(DataProvider):
    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def get_snapshot(self, instrument_id: str) -> Optional[IndicatorSnapshot]:
        path = self.data_dir / f"{instrument_id}.json"
        if not path.exists():
            log.warning(f"No snapshot file for {instrument_id} at {path}")
            return None
        try:
            return load_snapshot(path)
        except (OSError, ValueError) as e:
            log.warning(f"Unreadable snapshot {path}: {e}")
            return None

    def get_candles(self, instrument_id: str, count: int) -> list[Candle]:
        path = self.data_dir / f"{instrument_id}.csv"
        if not path.exists():
            log.warning(f"No candle file for {instrument_id} at {path}")
            return []
        try:
            candles = read_candles_csv(path)
        except (OSError, ValueError) as e:
            log.warning(f"Unreadable candles {path}: {e}")
            return []
        return candles[-count:] if count > 0 else candles
