"""
Adaptive trailing stop.

The stop for an open position moves through three regimes:

- an initial stop a fixed number of ticks away from the signal price;
- breakeven protection, two ticks past the entry price, once profit
  reaches the configured trigger;
- a trailing stop whose distance tightens as profit grows but never
  drops below the ATR volatility floor.

Every computation runs on a signed price axis (`Direction.sign`), so
long and short share one code path.  Once trailing is active the level
only ever moves in the position's favour.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional
import logging

from ..config.schema import StrategyConfig
from ..execution.models import Direction

logger = logging.getLogger(__name__)

BREAKEVEN_OFFSET_TICKS = 2
TIGHTENING_STEP_POINTS = 5
MIN_DISTANCE_FRACTION = 0.2


@dataclass(frozen=True)
class StopState:
    """Stop level and protective flags for one open position."""
    level: float
    breakeven_activated: bool = False
    trailing_activated: bool = False


@dataclass(frozen=True)
class StopUpdate:
    """Result of one `TrailingStopEngine.update` call."""
    state: StopState
    changed: bool = False
    breakeven_triggered: bool = False


class TrailingStopEngine:
    """Compute stop levels from the strategy configuration."""

    def __init__(self, config: StrategyConfig) -> None:
        self.config = config

    def initial_stop(self, direction: Direction, reference_price: float, tick_size: float) -> StopState:
        """Stop placed when an entry is issued, before any fill is known."""
        level = reference_price - direction.sign * self.config.trailing_stop_points * tick_size
        return StopState(level=level)

    def trailing_distance(self, profit_points: float, atr: float, tick_size: float) -> float:
        """Distance in ticks for the given profit, after tightening and ATR floor."""
        cfg = self.config
        base_distance = cfg.trailing_stop_points
        if profit_points > cfg.profit_trigger_points:
            profit_levels = (profit_points - cfg.profit_trigger_points) / TIGHTENING_STEP_POINTS
            reduction = profit_levels * cfg.progressive_tightening_rate * base_distance
            base_distance = max(base_distance - reduction, base_distance * MIN_DISTANCE_FRACTION)
        atr_distance = cfg.atr_multiplier * atr / tick_size
        return max(base_distance, atr_distance)

    def update(
        self,
        stop: StopState,
        direction: Direction,
        entry_price: Optional[float],
        current_price: float,
        atr: float,
        tick_size: float,
    ) -> StopUpdate:
        """Advance the stop by one bar.

        Parameters
        ----------
        stop : StopState
            The level and flags after the previous bar.
        direction : Direction
            Side of the open position.
        entry_price : float or None
            Fill price of the entry.  ``None`` (or a non-positive price)
            means no fill is known yet and the stop is returned untouched.
        current_price : float
            Close of the current bar.
        atr : float
            Current ATR reading, in price units.
        tick_size : float
            Instrument tick size.

        Returns
        -------
        StopUpdate
            The new state and whether anything changed.  Breakeven
            activation is reported alone; no trailing move happens on the
            same call.
        """
        if entry_price is None or entry_price <= 0:
            return StopUpdate(state=stop)

        sign = direction.sign
        profit_points = sign * (current_price - entry_price) / tick_size

        if not stop.breakeven_activated and profit_points >= self.config.profit_trigger_points:
            level = entry_price + sign * BREAKEVEN_OFFSET_TICKS * tick_size
            logger.info("%s position: breakeven protection activated at %.2f", direction.label, level)
            new_state = StopState(level=level, breakeven_activated=True, trailing_activated=True)
            return StopUpdate(state=new_state, changed=True, breakeven_triggered=True)

        distance = self.trailing_distance(profit_points, atr, tick_size)
        candidate = current_price - sign * distance * tick_size

        if sign * candidate > sign * stop.level or not stop.trailing_activated:
            new_state = replace(stop, level=candidate, trailing_activated=True)
            changed = new_state != stop
            if changed:
                logger.debug("%s trailing stop moved %.2f -> %.2f", direction.label, stop.level, candidate)
            return StopUpdate(state=new_state, changed=changed)
        return StopUpdate(state=stop)

    @staticmethod
    def is_stop_hit(stop: StopState, direction: Direction, bar_high: float, bar_low: float) -> bool:
        """True when the bar's adverse extreme reached the stop level."""
        adverse_extreme = bar_low if direction is Direction.LONG else bar_high
        return direction.sign * adverse_extreme <= direction.sign * stop.level
