"""
MetaTrader 5 execution.

`MT5Gateway` sends the engine's order intents to a MetaTrader 5 terminal
as market deals and translates the terminal's positions and deal
history back into `ExternalPositionSnapshot` and `ExecutionFill` events.
`MT5LiveSession` polls for closed bars, runs the engine on each one and
relays gateway events in between.  Completed trades are persisted to
disk so that statistics survive restarts.

**Note**: Running this requires the `MetaTrader5` package and a locally
installed MT5 terminal.  In environments where MT5 is not available the
session will not start.
"""

from __future__ import annotations

import time
from typing import Dict, List, Optional, Sequence
import logging
from datetime import datetime, timedelta, timezone
import pandas as pd

from ..config.schema import Config
from ..data.indicators import add_indicators, indicator_values
from ..data.mt5_data import MT5DataFeed, require_mt5
from ..utils.persistence import load_history, save_history
from ..utils.timeutils import entries_allowed
from .engine import EngineSink, ExecutionGateway, StrategyEngine
from .models import (
    Bar,
    Direction,
    ExecutionFill,
    ExternalPositionSnapshot,
    FillAction,
    MarketPosition,
    OrderIntent,
)

logger = logging.getLogger(__name__)

# deal history is queried from this far before the newest deal already seen
DEAL_LOOKBACK = timedelta(minutes=1)


class MT5Gateway(ExecutionGateway):
    """Market orders and position/deal polling against one MT5 symbol."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.symbol = config.instrument.symbol
        self._seen_deals: Dict[int, datetime] = {}
        self._deals_since = datetime.now(timezone.utc)

    def submit(self, intent: OrderIntent) -> None:
        api = require_mt5()
        tick = api.symbol_info_tick(self.symbol)
        if tick is None:
            raise RuntimeError(f"No tick data for {self.symbol}: {api.last_error()}")
        buy = intent.kind.is_entry == (intent.direction is Direction.LONG)
        volume = float(intent.quantity) if intent.kind.is_entry else self._open_volume()
        request = {
            "action": api.TRADE_ACTION_DEAL,
            "symbol": self.symbol,
            "volume": volume,
            "type": api.ORDER_TYPE_BUY if buy else api.ORDER_TYPE_SELL,
            "price": tick.ask if buy else tick.bid,
            "deviation": self.config.mt5.deviation,
            "magic": self.config.mt5.magic,
            "comment": intent.label,
            "type_time": api.ORDER_TIME_GTC,
            "type_filling": api.ORDER_FILLING_IOC,
        }
        if not intent.kind.is_entry:
            ticket = self._open_ticket()
            if ticket is None:
                logger.warning("Exit '%s' skipped: no open MT5 position for %s", intent.label, self.symbol)
                return
            request["position"] = ticket
        result = api.order_send(request)
        if result is None or result.retcode != api.TRADE_RETCODE_DONE:
            code = getattr(result, "retcode", None)
            raise RuntimeError(f"order_send for '{intent.label}' failed: retcode={code} {api.last_error()}")
        logger.info("MT5 order '%s' done: deal=%s price=%s", intent.label, result.deal, result.price)

    def _positions(self) -> Sequence:
        api = require_mt5()
        positions = api.positions_get(symbol=self.symbol) or ()
        return [p for p in positions if p.magic == self.config.mt5.magic]

    def _open_ticket(self) -> Optional[int]:
        positions = self._positions()
        return positions[0].ticket if positions else None

    def _open_volume(self) -> float:
        return float(sum(p.volume for p in self._positions()))

    def poll_position(self) -> ExternalPositionSnapshot:
        """Current position of our magic number on the symbol."""
        api = require_mt5()
        positions = self._positions()
        now = pd.Timestamp.now(tz="UTC")
        if not positions:
            snapshot = ExternalPositionSnapshot.flat(now)
        else:
            long = positions[0].type == api.POSITION_TYPE_BUY
            snapshot = ExternalPositionSnapshot(
                MarketPosition.LONG if long else MarketPosition.SHORT,
                int(round(sum(p.volume for p in positions))),
                now,
            )
        return snapshot

    def poll_fills(self) -> List[ExecutionFill]:
        """Deals for our magic number not reported before, oldest first."""
        api = require_mt5()
        deals = api.history_deals_get(self._deals_since - DEAL_LOOKBACK,
                                      datetime.now(timezone.utc) + DEAL_LOOKBACK) or ()
        fills: List[ExecutionFill] = []
        for deal in sorted(deals, key=lambda d: d.time_msc):
            if deal.ticket in self._seen_deals or deal.magic != self.config.mt5.magic:
                continue
            if deal.symbol != self.symbol:
                continue
            deal_time = datetime.fromtimestamp(deal.time_msc / 1000, timezone.utc)
            self._seen_deals[deal.ticket] = deal_time
            self._deals_since = max(self._deals_since, deal_time)
            buy = deal.type == api.DEAL_TYPE_BUY
            if deal.entry == api.DEAL_ENTRY_IN:
                action = FillAction.ENTRY_BUY if buy else FillAction.ENTRY_SELL_SHORT
            else:
                action = FillAction.EXIT_BUY_TO_COVER if buy else FillAction.EXIT_SELL
            fills.append(ExecutionFill(
                action=action,
                price=float(deal.price),
                quantity=int(round(deal.volume)),
                order_label=deal.comment,
                timestamp=pd.Timestamp(deal.time_msc, unit='ms', tz='UTC'),
            ))
        self._forget_deals_before(self._deals_since - DEAL_LOOKBACK)
        return fills

    def _forget_deals_before(self, cutoff: datetime) -> None:
        """Drop tickets the next history query can no longer return."""
        for ticket in [t for t, seen in self._seen_deals.items() if seen < cutoff]:
            del self._seen_deals[ticket]


class MT5LiveSession:
    """Run the engine against a live or demo MetaTrader 5 account."""

    def __init__(self, config: Config, sinks: Optional[Sequence[EngineSink]] = None,
                 poll_seconds: float = 5.0) -> None:
        self.config = config
        self.poll_seconds = poll_seconds
        self.state_file = config.output.state_file
        self.data_feed = MT5DataFeed(config.mt5, config.session.timezone)
        self.gateway = MT5Gateway(config)
        history = load_history(self.state_file)
        if history:
            logger.info("Restored %d completed trades from %s", len(history), self.state_file)
        self.engine = StrategyEngine(config, self.gateway, sinks=sinks, history=history)
        self.last_bar_time: Optional[pd.Timestamp] = None

    def _persist_state(self) -> None:
        try:
            save_history(self.state_file, self.engine.history)
        except OSError as exc:
            logger.error("Could not save state to %s: %s", self.state_file, exc)

    def _relay_gateway_events(self) -> None:
        for fill in self.gateway.poll_fills():
            if self.engine.on_execution(fill) is not None:
                self._persist_state()
        self.engine.on_position_update(self.gateway.poll_position())

    def _process_closed_bar(self) -> None:
        strat = self.config.strategy
        bars = self.data_feed.get_closed_bars(self.config.instrument.symbol, strat.warmup_bars * 4 + 1)
        if len(bars) < strat.warmup_bars + 1:
            return
        closed = add_indicators(bars, strat)
        idx = len(closed) - 1
        ts = closed.index[idx]
        if self.last_bar_time is not None and ts <= self.last_bar_time:
            return
        self.last_bar_time = ts
        row = closed.iloc[idx]
        bar = Bar(time=ts, open=float(row['open']), high=float(row['high']), low=float(row['low']),
                  close=float(row['close']), tick_size=self.config.instrument.tick_size)
        self.engine.on_bar(bar, indicator_values(closed, idx), entries_allowed(ts, self.config.session))

    def run(self) -> None:
        """Main loop.  Runs until interrupted; state is saved on exit."""
        logger.info("Starting MT5 live session on %s", self.config.instrument.symbol)
        try:
            self.data_feed.connect()
        except RuntimeError as exc:
            logger.error("Failed to connect to MetaTrader 5: %s", exc)
            return
        try:
            while True:
                self._relay_gateway_events()
                self._process_closed_bar()
                self._relay_gateway_events()
                time.sleep(self.poll_seconds)
        except KeyboardInterrupt:
            logger.info("Shutting down MT5 session...")
        finally:
            self.data_feed.shutdown()
            self._persist_state()
