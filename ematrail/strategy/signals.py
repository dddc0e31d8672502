"""
EMA crossover signal detection.

The detector only looks at indicator values.  It knows nothing about the
current position, so the same signal drives entries and the exits of an
open position, including while new entries are suppressed by the
trading window.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from ..execution.models import Direction, IndicatorValues


class CrossSignal(str, Enum):
    NONE = "None"
    BULLISH_CROSS = "BullishCross"
    BEARISH_CROSS = "BearishCross"

    @property
    def direction(self) -> Optional[Direction]:
        """Direction a position would be entered in on this signal."""
        if self is CrossSignal.BULLISH_CROSS:
            return Direction.LONG
        if self is CrossSignal.BEARISH_CROSS:
            return Direction.SHORT
        return None

    def exits(self, direction: Direction) -> bool:
        """True when this signal closes a position held in `direction`."""
        opposite = self.direction
        return opposite is not None and opposite is not direction


def detect_crossover(fast: float, fast_prev: float, slow: float, slow_prev: float) -> CrossSignal:
    """Classify the last two bars of the fast and slow averages.

    A bullish cross needs the fast average at or below the slow one on
    the prior bar and strictly above it now; a bearish cross is the
    mirror image.
    """
    if fast_prev <= slow_prev and fast > slow:
        return CrossSignal.BULLISH_CROSS
    if fast_prev >= slow_prev and fast < slow:
        return CrossSignal.BEARISH_CROSS
    return CrossSignal.NONE


def detect(indicators: IndicatorValues) -> CrossSignal:
    return detect_crossover(
        indicators.fast, indicators.fast_prev, indicators.slow, indicators.slow_prev
    )
