"""
Trade lifecycle recording.

An `OpenTrade` is created by a confirmed entry fill and turned into an
immutable `CompletedTrade` by the matching exit fill.  While it is open
the recorder tracks the running price extremes and the maximum
favourable / adverse excursion in currency.  Both excursions are
running maxima and never shrink during a trade.
"""

from __future__ import annotations

from typing import List, Optional
import logging
import pandas as pd

from ..strategy.trailing_stop import StopState
from .models import (
    CompletedTrade,
    Direction,
    ExitReason,
    IndicatorValues,
    OpenTrade,
)

logger = logging.getLogger(__name__)


class TradeLifecycleRecorder:
    """Own the open trade and the ordered trade history."""

    def __init__(
        self,
        tick_size: float,
        point_value: float,
        commission_per_contract: float = 2.5,
        initial_stop_points: float = 0.0,
    ) -> None:
        self.tick_size = tick_size
        self.point_value = point_value
        self.commission_per_contract = commission_per_contract
        self.initial_stop_points = initial_stop_points
        self.open: Optional[OpenTrade] = None
        self._closing: Optional[OpenTrade] = None
        self.history: List[CompletedTrade] = []

    @property
    def pending_close(self) -> Optional[OpenTrade]:
        return self._closing

    def open_trade(
        self,
        direction: Direction,
        price: float,
        time: pd.Timestamp,
        quantity: int,
        indicators: Optional[IndicatorValues] = None,
    ) -> OpenTrade:
        if self.open is not None:
            logger.warning("Entry fill while a %s trade is still open - replacing it",
                           self.open.direction.value)
        if self._closing is not None:
            logger.warning("Dropping %s trade that never received an exit fill",
                           self._closing.direction.value)
            self._closing = None
        self.open = OpenTrade(
            direction=direction,
            entry_price=price,
            entry_time=time,
            quantity=quantity,
            running_high=price,
            running_low=price,
            entry_indicators=indicators,
        )
        logger.info("Trade opened: %s at %.2f - entry time %s", direction.value, price, time)
        return self.open

    def update_excursion(self, current_price: float, point_value: Optional[float] = None) -> None:
        """Extend the running extremes and refresh MFE/MAE.  No-op when flat.

        `point_value` defaults to the one the recorder was built with.
        """
        trade = self.open
        if trade is None or trade.entry_price <= 0:
            return
        trade.running_high = max(trade.running_high, current_price)
        trade.running_low = min(trade.running_low, current_price)

        if trade.direction is Direction.LONG:
            favourable, adverse = trade.running_high, trade.running_low
        else:
            favourable, adverse = trade.running_low, trade.running_high
        sign = trade.direction.sign
        scale = trade.quantity * (self.point_value if point_value is None else point_value)
        mfe = sign * (favourable - trade.entry_price) * scale
        mae = sign * (trade.entry_price - adverse) * scale
        trade.mfe = max(trade.mfe, mfe)
        trade.mae = max(trade.mae, mae)

    def note_stop(self, stop: Optional[StopState]) -> None:
        """Remember the latest stop so the completed record carries it."""
        trade = self.open
        if trade is None or stop is None:
            return
        trade.stop_level = stop.level
        trade.breakeven_activated = stop.breakeven_activated
        trade.trailing_activated = stop.trailing_activated

    def detach(self) -> Optional[OpenTrade]:
        """Clear the open trade after the position went flat.

        The trade is kept aside until its exit fill arrives, since the
        gateway may report the flat position before the execution.
        """
        trade = self.open
        if trade is not None:
            self._closing = trade
            self.open = None
        return trade

    def close_trade(
        self,
        price: float,
        time: pd.Timestamp,
        quantity: int,
        order_label: str,
        indicators: Optional[IndicatorValues] = None,
    ) -> Optional[CompletedTrade]:
        """Turn the open (or detached) trade into a `CompletedTrade`.

        Returns ``None`` when there is no trade to close.
        """
        trade = self.open or self._closing
        if trade is None:
            logger.warning("Exit fill '%s' at %.2f with no open trade - ignored", order_label, price)
            return None

        sign = trade.direction.sign
        qty = quantity or trade.quantity
        points_pnl = sign * (price - trade.entry_price) / self.tick_size
        dollar_pnl = sign * (price - trade.entry_price) * qty * self.point_value
        commission = qty * self.commission_per_contract
        final_stop_distance = 0.0
        if trade.stop_level is not None:
            final_stop_distance = sign * (price - trade.stop_level) / self.tick_size

        entry_ind = trade.entry_indicators
        completed = CompletedTrade(
            trade_number=len(self.history) + 1,
            direction=trade.direction,
            entry_time=trade.entry_time,
            exit_time=time,
            entry_price=trade.entry_price,
            exit_price=price,
            quantity=qty,
            points_pnl=points_pnl,
            dollar_pnl=dollar_pnl,
            commission=commission,
            net_pnl=dollar_pnl - commission,
            mfe=trade.mfe,
            mae=trade.mae,
            exit_reason=ExitReason.from_label(order_label),
            breakeven_activated=trade.breakeven_activated,
            trailing_activated=trade.trailing_activated,
            initial_stop_distance=self.initial_stop_points,
            final_stop_distance=final_stop_distance,
            fast_at_entry=entry_ind.fast if entry_ind else None,
            slow_at_entry=entry_ind.slow if entry_ind else None,
            atr_at_entry=entry_ind.atr if entry_ind else None,
            fast_at_exit=indicators.fast if indicators else None,
            slow_at_exit=indicators.slow if indicators else None,
            atr_at_exit=indicators.atr if indicators else None,
        )
        self.history.append(completed)
        if trade is self.open:
            self.open = None
        self._closing = None
        logger.info(
            "Trade closed: %s at %.2f (%s) - P&L %.2f, MFE %.2f, MAE %.2f, duration %s",
            order_label, price, completed.exit_reason.value, dollar_pnl,
            completed.mfe, completed.mae, completed.duration,
        )
        return completed
