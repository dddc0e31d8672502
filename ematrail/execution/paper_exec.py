"""
Paper execution.

`PaperGateway` stands in for a broker: each order intent is filled in
full at the close of the bar that produced it.  Fills and the resulting
position report are queued and delivered only after the engine has
finished the bar, the way a real gateway answers asynchronously.

`PaperSession` replays CSV bars through the engine with that gateway,
using bar time as the engine clock so the reconciliation debounce window
is measured in market time.  It does not model spread, slippage or
partial fills.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple, Union
import logging
import pandas as pd

from ..config.schema import Config
from ..data.csv_data import CSVDataLoader
from ..data.indicators import add_indicators, indicator_values
from ..utils.timeutils import entries_allowed
from .engine import EngineSink, ExecutionGateway, StrategyEngine
from .models import (
    Bar,
    CompletedTrade,
    Direction,
    ExecutionFill,
    ExternalPositionSnapshot,
    FillAction,
    MarketPosition,
    OrderIntent,
)

logger = logging.getLogger(__name__)

PaperEvent = Union[ExecutionFill, ExternalPositionSnapshot]


class PaperGateway(ExecutionGateway):
    """Fill market orders at the current reference price."""

    def __init__(self) -> None:
        self.price: Optional[float] = None
        self.time: Optional[pd.Timestamp] = None
        self.position = MarketPosition.FLAT
        self.quantity = 0
        self.pending: List[PaperEvent] = []
        self.submitted: List[OrderIntent] = []

    def mark(self, price: float, time: pd.Timestamp) -> None:
        """Set the price and time used for the next fills."""
        self.price = price
        self.time = time

    def snapshot(self) -> ExternalPositionSnapshot:
        return ExternalPositionSnapshot(self.position, self.quantity, self.time)

    def submit(self, intent: OrderIntent) -> None:
        if self.price is None:
            raise RuntimeError("PaperGateway has no reference price; call mark() first")
        self.submitted.append(intent)
        direction = intent.direction
        if intent.kind.is_entry:
            if self.position is not MarketPosition.FLAT:
                logger.warning("Paper entry '%s' rejected: already %s", intent.label, self.position.value)
                return
            action = FillAction.ENTRY_BUY if direction is Direction.LONG else FillAction.ENTRY_SELL_SHORT
            quantity = intent.quantity
            self.position, self.quantity = direction.market_position, quantity
        else:
            if self.position is not direction.market_position:
                logger.warning("Paper exit '%s' ignored: position is %s", intent.label, self.position.value)
                return
            action = FillAction.EXIT_SELL if direction is Direction.LONG else FillAction.EXIT_BUY_TO_COVER
            quantity = self.quantity
            self.position, self.quantity = MarketPosition.FLAT, 0
        self.pending.append(ExecutionFill(action, self.price, quantity, intent.label, self.time))
        self.pending.append(self.snapshot())

    def flush(self, engine: StrategyEngine) -> None:
        """Deliver queued fills and position reports to the engine."""
        events, self.pending = self.pending, []
        for event in events:
            if isinstance(event, ExecutionFill):
                engine.on_execution(event)
            else:
                engine.on_position_update(event)


class PaperSession:
    """Replay bars from CSV through the engine.

    Parameters
    ----------
    config : Config
        Session configuration.
    sinks : sequence of EngineSink, optional
        Display and persistence sinks passed to the engine.
    """

    def __init__(self, config: Config, sinks: Optional[Sequence[EngineSink]] = None) -> None:
        self.config = config
        self.gateway = PaperGateway()
        self._now: Optional[pd.Timestamp] = None
        self.engine = StrategyEngine(config, self.gateway, sinks=sinks, clock=self._clock)
        self.data_loader = CSVDataLoader(config.data.csv_dir, config.data.timezone)

    def _clock(self) -> pd.Timestamp:
        return self._now if self._now is not None else pd.Timestamp.now(tz="UTC")

    def run(self, df: Optional[pd.DataFrame] = None) -> Tuple[List[CompletedTrade], pd.Timestamp]:
        """Process every bar after the indicator warm-up.

        Parameters
        ----------
        df : pandas.DataFrame, optional
            OHLC bars indexed by timestamp.  Loaded from the configured
            CSV directory when omitted.

        Returns
        -------
        trades : list of CompletedTrade
            Trades completed during the replay.
        start : pandas.Timestamp
            Time of the first processed bar.
        """
        if df is None:
            df = self.data_loader.load(self.config.instrument.symbol)
        df = add_indicators(df, self.config.strategy)
        warmup = max(self.config.strategy.warmup_bars, 1)
        tick_size = self.config.instrument.tick_size
        start = df.index[warmup] if len(df) > warmup else pd.Timestamp.now(tz="UTC")

        for idx in range(warmup, len(df)):
            ts = df.index[idx]
            row = df.iloc[idx]
            self._now = ts
            bar = Bar(time=ts, open=float(row['open']), high=float(row['high']),
                      low=float(row['low']), close=float(row['close']), tick_size=tick_size)
            self.gateway.mark(bar.close, ts)
            self.engine.on_bar(bar, indicator_values(df, idx), entries_allowed(ts, self.config.session))
            self.gateway.flush(self.engine)

        logger.info("Paper session finished: %d bars, %d trades", max(len(df) - warmup, 0),
                    len(self.engine.history))
        return list(self.engine.history), start
