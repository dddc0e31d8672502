"""
Indicator computation for the bar feed.

The engine consumes indicator values, it does not compute them.  This
module derives them from an OHLC DataFrame for the paper and live
runners: exponential moving averages seeded with the first close, and
an average true range that averages over the bars available until the
look-back is filled and smooths with Wilder's factor after that.
"""

from __future__ import annotations

import pandas as pd

from ..config.schema import StrategyConfig
from ..execution.models import IndicatorValues


def ema(series: pd.Series, period: int) -> pd.Series:
    """EMA[i] = close[i] * k + EMA[i-1] * (1 - k), k = 2 / (period + 1)."""
    return series.ewm(span=period, adjust=False).mean()


def true_range(df: pd.DataFrame) -> pd.Series:
    prev_close = df['close'].shift(1)
    ranges = pd.concat(
        [
            df['high'] - df['low'],
            (df['high'] - prev_close).abs(),
            (df['low'] - prev_close).abs(),
        ],
        axis=1,
    )
    # the first bar has no previous close; NaNs are skipped so it is high - low
    return ranges.max(axis=1)


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """Average true range over `period` bars."""
    tr = true_range(df)
    values = []
    prev = 0.0
    for i, value in enumerate(tr.tolist()):
        n = min(i + 1, period)
        prev = value if i == 0 else ((n - 1) * prev + value) / n
        values.append(prev)
    return pd.Series(values, index=df.index, name='atr')


def add_indicators(df: pd.DataFrame, config: StrategyConfig) -> pd.DataFrame:
    """Return a copy of `df` with `fast`, `slow` and `atr` columns."""
    out = df.copy()
    out['fast'] = ema(out['close'], config.fast_period)
    out['slow'] = ema(out['close'], config.slow_period)
    out['atr'] = atr(out, config.atr_period)
    return out


def indicator_values(df: pd.DataFrame, idx: int) -> IndicatorValues:
    """Readings for row `idx` and the row before it.  `idx` must be >= 1."""
    row, prev = df.iloc[idx], df.iloc[idx - 1]
    return IndicatorValues(
        fast=float(row['fast']),
        fast_prev=float(prev['fast']),
        slow=float(row['slow']),
        slow_prev=float(prev['slow']),
        atr=float(row['atr']),
    )
