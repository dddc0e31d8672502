"""
Position, order, fill and trade models.

These dataclasses represent the objects passed between the strategy
engine, the execution gateway and the reporting sinks.  Keeping them in
a separate module improves readability and makes unit testing easier.

Long and short logic elsewhere in the package is written once against a
signed price axis: `Direction.sign` is ``+1`` for long and ``-1`` for
short, so ``sign * (price - entry)`` is the favourable move either way.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional
import pandas as pd


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1

    @property
    def market_position(self) -> "MarketPosition":
        return MarketPosition(self.value)

    @property
    def label(self) -> str:
        return "Long" if self is Direction.LONG else "Short"


class MarketPosition(str, Enum):
    FLAT = "FLAT"
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def direction(self) -> Optional[Direction]:
        if self is MarketPosition.FLAT:
            return None
        return Direction(self.value)


@dataclass(frozen=True)
class PositionState:
    """The internally tracked position.

    Quantity is strictly positive when long or short and zero when flat;
    constructing any other combination raises `ValueError`.
    """
    market_position: MarketPosition
    quantity: int
    updated_at: Optional[pd.Timestamp] = None

    def __post_init__(self) -> None:
        if self.market_position is MarketPosition.FLAT and self.quantity != 0:
            raise ValueError(f"Flat position must have zero quantity, got {self.quantity}")
        if self.market_position is not MarketPosition.FLAT and self.quantity <= 0:
            raise ValueError(
                f"{self.market_position.value} position needs a positive quantity, got {self.quantity}"
            )

    @classmethod
    def flat(cls, at: Optional[pd.Timestamp] = None) -> "PositionState":
        return cls(MarketPosition.FLAT, 0, at)

    @property
    def is_flat(self) -> bool:
        return self.market_position is MarketPosition.FLAT

    def matches(self, snapshot: "ExternalPositionSnapshot") -> bool:
        """True when direction and quantity agree with the gateway's view."""
        return (
            self.market_position is snapshot.market_position
            and self.quantity == snapshot.quantity
        )


@dataclass(frozen=True)
class ExternalPositionSnapshot:
    """Position as reported by the execution gateway.  Read-only input."""
    market_position: MarketPosition
    quantity: int
    reported_at: Optional[pd.Timestamp] = None

    @classmethod
    def flat(cls, at: Optional[pd.Timestamp] = None) -> "ExternalPositionSnapshot":
        return cls(MarketPosition.FLAT, 0, at)

    @property
    def is_flat(self) -> bool:
        return self.market_position is MarketPosition.FLAT and self.quantity == 0


class FillAction(str, Enum):
    ENTRY_BUY = "Buy"
    ENTRY_SELL_SHORT = "SellShort"
    EXIT_SELL = "Sell"
    EXIT_BUY_TO_COVER = "BuyToCover"

    @property
    def is_entry(self) -> bool:
        return self in (FillAction.ENTRY_BUY, FillAction.ENTRY_SELL_SHORT)

    @property
    def direction(self) -> Direction:
        """Direction of the position this fill opens or closes."""
        if self in (FillAction.ENTRY_BUY, FillAction.EXIT_SELL):
            return Direction.LONG
        return Direction.SHORT


@dataclass(frozen=True)
class ExecutionFill:
    """A confirmed execution reported by the gateway."""
    action: FillAction
    price: float
    quantity: int
    order_label: str
    timestamp: pd.Timestamp


class IntentKind(str, Enum):
    ENTER_LONG = "EnterLong"
    ENTER_SHORT = "EnterShort"
    EXIT_LONG = "ExitLong"
    EXIT_SHORT = "ExitShort"

    @property
    def is_entry(self) -> bool:
        return self in (IntentKind.ENTER_LONG, IntentKind.ENTER_SHORT)


@dataclass(frozen=True)
class OrderIntent:
    """A market order the engine asks the gateway to place."""
    kind: IntentKind
    label: str
    quantity: int = 0
    from_entry_label: str = ""

    @property
    def direction(self) -> Direction:
        if self.kind in (IntentKind.ENTER_LONG, IntentKind.EXIT_LONG):
            return Direction.LONG
        return Direction.SHORT

    @classmethod
    def enter(cls, direction: Direction, quantity: int) -> "OrderIntent":
        kind = IntentKind.ENTER_LONG if direction is Direction.LONG else IntentKind.ENTER_SHORT
        return cls(kind=kind, label=entry_label(direction), quantity=quantity)

    @classmethod
    def exit(cls, direction: Direction, label: str) -> "OrderIntent":
        kind = IntentKind.EXIT_LONG if direction is Direction.LONG else IntentKind.EXIT_SHORT
        return cls(kind=kind, label=label, from_entry_label=entry_label(direction))


def entry_label(direction: Direction) -> str:
    return f"{direction.label} Entry"


def stop_label(direction: Direction) -> str:
    return f"{direction.label} Stop"


def signal_exit_label(direction: Direction) -> str:
    return f"{direction.label} Exit Signal"


class ExitReason(str, Enum):
    STOP_LOSS = "Stop Loss"
    CROSSOVER_SIGNAL = "Crossover Signal"
    MANUAL_EXIT = "Manual Exit"
    UNKNOWN = "Unknown"

    @classmethod
    def from_label(cls, label: str) -> "ExitReason":
        """Classify an exit order label.  The checks are ordered: a stop
        label wins over anything else, and ``Exit Signal`` over ``Exit``."""
        label = label or ""
        if "Stop" in label:
            return cls.STOP_LOSS
        if "Exit Signal" in label:
            return cls.CROSSOVER_SIGNAL
        if "Exit" in label:
            return cls.MANUAL_EXIT
        return cls.UNKNOWN


@dataclass(frozen=True)
class Bar:
    """One closed price bar."""
    time: pd.Timestamp
    open: float
    high: float
    low: float
    close: float
    tick_size: float


@dataclass(frozen=True)
class IndicatorValues:
    """Indicator readings for the current and the prior bar."""
    fast: float
    fast_prev: float
    slow: float
    slow_prev: float
    atr: float


@dataclass
class OpenTrade:
    """The trade currently open, created by the entry fill."""
    direction: Direction
    entry_price: float
    entry_time: pd.Timestamp
    quantity: int
    running_high: float
    running_low: float
    mfe: float = 0.0
    mae: float = 0.0
    entry_indicators: Optional[IndicatorValues] = None
    stop_level: Optional[float] = None
    breakeven_activated: bool = False
    trailing_activated: bool = False


@dataclass(frozen=True)
class CompletedTrade:
    """A closed trade.  Immutable once created."""
    trade_number: int
    direction: Direction
    entry_time: pd.Timestamp
    exit_time: pd.Timestamp
    entry_price: float
    exit_price: float
    quantity: int
    points_pnl: float
    dollar_pnl: float
    commission: float
    net_pnl: float
    mfe: float
    mae: float
    exit_reason: ExitReason
    breakeven_activated: bool
    trailing_activated: bool
    initial_stop_distance: float = 0.0
    final_stop_distance: float = 0.0
    fast_at_entry: Optional[float] = None
    slow_at_entry: Optional[float] = None
    atr_at_entry: Optional[float] = None
    fast_at_exit: Optional[float] = None
    slow_at_exit: Optional[float] = None
    atr_at_exit: Optional[float] = None

    @property
    def duration(self) -> pd.Timedelta:
        return pd.Timestamp(self.exit_time) - pd.Timestamp(self.entry_time)

    @property
    def is_win(self) -> bool:
        return self.dollar_pnl > 0

    @property
    def is_loss(self) -> bool:
        return self.dollar_pnl < 0


def trade_to_dict(trade: CompletedTrade) -> Dict[str, Any]:
    """Serialise a trade for the JSON state file."""
    data = asdict(trade)
    data['direction'] = trade.direction.value
    data['exit_reason'] = trade.exit_reason.value
    data['entry_time'] = pd.Timestamp(trade.entry_time).isoformat()
    data['exit_time'] = pd.Timestamp(trade.exit_time).isoformat()
    return data


def trade_from_dict(data: Dict[str, Any]) -> CompletedTrade:
    values = dict(data)
    values['direction'] = Direction(values['direction'])
    values['exit_reason'] = ExitReason(values['exit_reason'])
    values['entry_time'] = pd.Timestamp(values['entry_time'])
    values['exit_time'] = pd.Timestamp(values['exit_time'])
    return CompletedTrade(**values)
