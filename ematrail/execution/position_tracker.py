"""
Internal position tracking and reconciliation with the gateway.

Two views of the position exist at any time: the one kept here, updated
optimistically the moment the engine issues an order, and the one the
execution gateway reports asynchronously once fills are confirmed.  The
tracker gates new entries on the two agreeing and resolves
disagreements in favour of the gateway, except for a short debounce
window after a local change.  Inside that window a matching echo of our
own order is ignored instead of re-applied.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
import logging
import pandas as pd

from ..config.schema import TradingDirection
from .models import Direction, ExternalPositionSnapshot, MarketPosition, PositionState

logger = logging.getLogger(__name__)


def utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


class DenyReason(str, Enum):
    POSITION_MISMATCH = "internal and external positions disagree"
    NOT_FLAT = "a position is already open"
    DIRECTION_RESTRICTED = "direction excluded by trading direction setting"
    OUTSIDE_TRADING_WINDOW = "outside the trading window"


@dataclass(frozen=True)
class EntryDecision:
    """Outcome of `PositionStateTracker.try_enter`."""
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "EntryDecision":
        return cls(True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "EntryDecision":
        return cls(False, reason)


class ReconcileOutcome(str, Enum):
    SKIPPED = "skipped"
    SYNCED = "synced"
    FLATTENED = "flattened"


class PositionStateTracker:
    """Own the internal `PositionState` and keep it honest.

    Parameters
    ----------
    quantity : int
        Contracts per entry.
    trading_direction : TradingDirection
        Restricts which directions may be entered.
    debounce_seconds : float
        Window after a local change during which a matching external
        report is treated as an echo.
    clock : callable, optional
        Returns the current time as a tz-aware `pandas.Timestamp`.
        Defaults to the UTC wall clock; paper sessions pass bar time.
    """

    def __init__(
        self,
        quantity: int,
        trading_direction: TradingDirection = TradingDirection.BOTH,
        debounce_seconds: float = 2.0,
        clock: Optional[Callable[[], pd.Timestamp]] = None,
    ) -> None:
        self.quantity = quantity
        self.trading_direction = trading_direction
        self.debounce_seconds = debounce_seconds
        self.clock = clock or utc_now
        self._state = PositionState.flat(self.clock())

    @property
    def state(self) -> PositionState:
        return self._state

    def _set(self, market_position: MarketPosition, quantity: int) -> None:
        self._state = PositionState(market_position, quantity, self.clock())

    def _direction_permitted(self, direction: Direction) -> bool:
        if self.trading_direction is TradingDirection.LONG_ONLY:
            return direction is Direction.LONG
        if self.trading_direction is TradingDirection.SHORT_ONLY:
            return direction is Direction.SHORT
        return True

    def recently_updated(self) -> bool:
        updated_at = self._state.updated_at
        if updated_at is None:
            return False
        elapsed = (self.clock() - updated_at).total_seconds()
        return 0 <= elapsed < self.debounce_seconds

    def try_enter(
        self,
        direction: Direction,
        snapshot: ExternalPositionSnapshot,
        entries_allowed: bool = True,
    ) -> EntryDecision:
        """Decide whether a new position may be opened and, if so, open it
        locally before the gateway confirms the fill."""
        if not self._state.matches(snapshot):
            decision = EntryDecision.deny(DenyReason.POSITION_MISMATCH)
        elif not self._state.is_flat:
            decision = EntryDecision.deny(DenyReason.NOT_FLAT)
        elif not self._direction_permitted(direction):
            decision = EntryDecision.deny(DenyReason.DIRECTION_RESTRICTED)
        elif not entries_allowed:
            decision = EntryDecision.deny(DenyReason.OUTSIDE_TRADING_WINDOW)
        else:
            self._set(direction.market_position, self.quantity)
            logger.info("%s entry allowed - tracking %s qty %d", direction.label,
                        direction.value, self.quantity)
            return EntryDecision.allow()

        logger.debug("%s entry denied: %s (ours=%s/%d, gateway=%s/%d)", direction.label,
                     decision.reason.value, self._state.market_position.value, self._state.quantity,
                     snapshot.market_position.value, snapshot.quantity)
        return decision

    def reconcile(self, snapshot: ExternalPositionSnapshot) -> ReconcileOutcome:
        """Apply a position report from the gateway.

        A report matching a change we made within the debounce window is
        our own echo and is skipped.  Anything else overwrites the local
        state.  Calling this twice with the same snapshot leaves the same
        state as calling it once.
        """
        if self.recently_updated() and self._state.matches(snapshot):
            logger.debug("Reconcile skipped - local state already matches and was updated recently")
            return ReconcileOutcome.SKIPPED

        before = self._state
        self._set(snapshot.market_position, snapshot.quantity)
        if not before.matches(snapshot):
            logger.info("Reconciled position %s/%d -> %s/%d", before.market_position.value,
                        before.quantity, snapshot.market_position.value, snapshot.quantity)
        if self._state.is_flat:
            return ReconcileOutcome.FLATTENED
        return ReconcileOutcome.SYNCED

    def force_flat_if_external_flat(self, snapshot: ExternalPositionSnapshot) -> bool:
        """Correct a stale local position before an entry decision.

        Returns
        -------
        bool
            True when the local state was changed to flat.
        """
        if snapshot.is_flat and not self._state.is_flat:
            logger.warning("Forcing sync: gateway is flat but tracking shows %s qty %d",
                           self._state.market_position.value, self._state.quantity)
            self._set(MarketPosition.FLAT, 0)
            return True
        return False

    def mark_flat(self) -> None:
        """Optimistically go flat after issuing an exit order."""
        self._set(MarketPosition.FLAT, 0)
