"""
MetaTrader 5 bar feed.

Wraps the `MetaTrader5` Python package to pull the most recent closed
bars of the configured timeframe for live sessions.  The package is
optional: paper sessions run from CSV without it, and a live session
fails with a clear message when it is missing.
"""

from __future__ import annotations

from typing import Any
import logging
import pandas as pd

from ..config.schema import MT5Config

try:
    import MetaTrader5 as mt5  # type: ignore
except ImportError:
    mt5 = None

logger = logging.getLogger(__name__)

# attribute names on the MetaTrader5 module, resolved on first use
TIMEFRAMES = {
    'M1': 'TIMEFRAME_M1',
    'M2': 'TIMEFRAME_M2',
    'M3': 'TIMEFRAME_M3',
    'M5': 'TIMEFRAME_M5',
    'M10': 'TIMEFRAME_M10',
    'M15': 'TIMEFRAME_M15',
    'M30': 'TIMEFRAME_M30',
    'H1': 'TIMEFRAME_H1',
}


def require_mt5() -> Any:
    """Return the MetaTrader5 module or raise if it is not installed."""
    if mt5 is None:
        raise RuntimeError(
            "MetaTrader5 package is not installed.  Install it with 'pip install MetaTrader5' to trade live."
        )
    return mt5


class MT5DataFeed:
    """Terminal connection and closed-bar retrieval.

    Parameters
    ----------
    config : MT5Config
        Terminal credentials and the bar timeframe.
    timezone : str
        Timezone the returned bar index is converted to.
    """

    def __init__(self, config: MT5Config, timezone: str) -> None:
        self.config = config
        self.timezone = timezone
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Initialise the MetaTrader 5 terminal and log into the account.

        Raises
        ------
        RuntimeError
            If the package is missing or the terminal refuses the login.
        """
        api = require_mt5()
        if not api.initialize(path=self.config.path, login=self.config.login,
                              password=self.config.password, server=self.config.server):
            raise RuntimeError(f"MT5 initialisation failed: {api.last_error()}")
        self._connected = True
        logger.info("Connected to MT5 server %s as %s", self.config.server, self.config.login)

    def shutdown(self) -> None:
        if self._connected:
            require_mt5().shutdown()
            self._connected = False

    def timeframe(self) -> int:
        name = TIMEFRAMES.get(self.config.timeframe.upper())
        if name is None:
            raise ValueError(f"Unsupported MT5 timeframe {self.config.timeframe!r}; "
                             f"use one of {', '.join(TIMEFRAMES)}")
        return getattr(require_mt5(), name)

    def get_closed_bars(self, symbol: str, count: int) -> pd.DataFrame:
        """The last `count` closed bars of `symbol`, oldest first.

        Position 0 of ``copy_rates_from_pos`` is the bar still forming,
        so the request starts at position 1.  An empty frame is returned
        when the terminal has no data.
        """
        if not self._connected:
            raise RuntimeError("MT5DataFeed is not connected.  Call connect() before requesting data.")
        rates = require_mt5().copy_rates_from_pos(symbol, self.timeframe(), 1, count)
        if rates is None or len(rates) == 0:
            logger.warning("No MT5 rates for %s: %s", symbol, require_mt5().last_error())
            return pd.DataFrame(columns=['open', 'high', 'low', 'close'])
        bars = pd.DataFrame(rates)
        index = pd.to_datetime(bars.pop('time'), unit='s', utc=True)
        bars.index = pd.DatetimeIndex(index).tz_convert(self.timezone)
        bars.index.name = 'time'
        return bars[['open', 'high', 'low', 'close']].astype(float).sort_index()
