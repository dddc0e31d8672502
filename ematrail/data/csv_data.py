"""
CSV data loader.

This module provides a class to load historical OHLC bars from CSV
files for paper sessions.  The expected schema for each CSV is:

```
time,open,high,low,close[,volume]
```

Only the `time`, `open`, `high`, `low` and `close` columns are
required.  Additional columns are ignored.  MetaTrader 5 exports
(tab-separated, with `<DATE>` and `<TIME>` columns) are accepted too.
Naive timestamps are localised to the configured timezone.
"""

from __future__ import annotations

import logging
from pathlib import Path
import pandas as pd

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["open", "high", "low", "close"]


class CSVDataLoader:
    """Load OHLC data from CSV files.

    Parameters
    ----------
    csv_dir : str
        Directory where the CSV files are located.  Each symbol’s file
        must be named `{SYMBOL}.csv`.
    timezone : str
        IANA timezone name used to localise naive timestamps.
    """

    def __init__(self, csv_dir: str, timezone: str) -> None:
        self.csv_dir = Path(csv_dir)
        self.timezone = timezone

    def path_for(self, symbol: str) -> Path:
        return self.csv_dir / f"{symbol}.csv"

    def load(self, symbol: str) -> pd.DataFrame:
        """Return bars indexed by tz-aware timestamp, oldest first.

        Raises
        ------
        FileNotFoundError
            If no file exists for `symbol`.
        ValueError
            If the file is in neither supported format.
        """
        return self.load_file(self.path_for(symbol), symbol)

    def load_file(self, file_path, symbol: str) -> pd.DataFrame:
        """Load bars for `symbol` from an explicit file path."""
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found for symbol {symbol}: {file_path}")

        df = pd.read_csv(file_path)
        if "time" in df.columns:
            return self._finish(self._from_standard(df), symbol)

        logger.debug("%s has no 'time' column, trying MT5 export format", file_path.name)
        return self._finish(self._from_mt5_export(file_path, symbol), symbol)

    def _from_standard(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df["time"] = pd.to_datetime(df["time"], errors="raise")
        df = df.set_index("time")
        return df

    def _from_mt5_export(self, file_path: Path, symbol: str) -> pd.DataFrame:
        df = pd.read_csv(file_path, sep="\t", engine="python")
        df.columns = [c.strip() for c in df.columns]

        required = ["<DATE>", "<TIME>", "<OPEN>", "<HIGH>", "<LOW>", "<CLOSE>"]
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized CSV format for {symbol}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )

        dt = df["<DATE>"].astype(str).str.strip() + " " + df["<TIME>"].astype(str).str.strip()
        ts = pd.to_datetime(dt, format="%Y.%m.%d %H:%M:%S", errors="coerce")
        if ts.isna().any():
            bad = dt[ts.isna()].head(5).tolist()
            raise ValueError(f"Could not parse MT5 DATE/TIME for {symbol}. Examples: {bad}")

        return pd.DataFrame(
            {
                "open": df["<OPEN>"].astype(float),
                "high": df["<HIGH>"].astype(float),
                "low": df["<LOW>"].astype(float),
                "close": df["<CLOSE>"].astype(float),
            },
            index=pd.DatetimeIndex(ts),
        )

    def _finish(self, df: pd.DataFrame, symbol: str) -> pd.DataFrame:
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"CSV for {symbol} is missing columns: {missing}")
        df = df[REQUIRED_COLUMNS].astype(float).sort_index()
        if df.index.tz is None:
            df.index = df.index.tz_localize(self.timezone)
        else:
            df.index = df.index.tz_convert(self.timezone)
        df.index.name = "time"
        return df
