"""
Running trade statistics.

`StatisticsAggregator` folds completed trades, in the order they close,
into a `RunningStatistics` record.  Nothing else mutates the record, and
every field is a function of the trade sequence alone, so replaying the
history reproduces it exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable

from ..execution.models import CompletedTrade, Direction


@dataclass
class DirectionStats:
    trades: int = 0
    wins: int = 0
    losses: int = 0
    pnl: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0

    @property
    def win_rate(self) -> float:
        return self.wins / self.trades if self.trades else 0.0


@dataclass
class RunningStatistics:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    per_direction: Dict[Direction, DirectionStats] = field(
        default_factory=lambda: {Direction.LONG: DirectionStats(), Direction.SHORT: DirectionStats()}
    )
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    cumulative_pnl: float = 0.0
    peak_pnl: float = 0.0
    current_drawdown: float = 0.0
    max_drawdown: float = 0.0

    @property
    def win_rate(self) -> float:
        return self.winning_trades / self.total_trades if self.total_trades else 0.0

    @property
    def profit_factor(self) -> float:
        return self.gross_profit / self.gross_loss if self.gross_loss > 0 else 0.0

    @property
    def average_win(self) -> float:
        return self.gross_profit / self.winning_trades if self.winning_trades else 0.0

    @property
    def average_loss(self) -> float:
        return self.gross_loss / self.losing_trades if self.losing_trades else 0.0

    @property
    def long(self) -> DirectionStats:
        return self.per_direction[Direction.LONG]

    @property
    def short(self) -> DirectionStats:
        return self.per_direction[Direction.SHORT]

    def copy(self) -> "RunningStatistics":
        """Independent snapshot safe to hand to display sinks."""
        return replace(
            self,
            per_direction={d: replace(s) for d, s in self.per_direction.items()},
        )

    def to_dict(self) -> dict:
        return {
            'total_trades': self.total_trades,
            'winning_trades': self.winning_trades,
            'losing_trades': self.losing_trades,
            'win_rate': self.win_rate,
            'total_pnl': self.cumulative_pnl,
            'gross_profit': self.gross_profit,
            'gross_loss': self.gross_loss,
            'profit_factor': self.profit_factor,
            'average_win': self.average_win,
            'average_loss': self.average_loss,
            'largest_win': self.largest_win,
            'largest_loss': self.largest_loss,
            'max_drawdown': self.max_drawdown,
            'current_drawdown': self.current_drawdown,
            'max_consecutive_wins': self.max_consecutive_wins,
            'max_consecutive_losses': self.max_consecutive_losses,
            'long': {
                'trades': self.long.trades, 'wins': self.long.wins, 'losses': self.long.losses,
                'pnl': self.long.pnl, 'win_rate': self.long.win_rate,
                'largest_win': self.long.largest_win, 'largest_loss': self.long.largest_loss,
            },
            'short': {
                'trades': self.short.trades, 'wins': self.short.wins, 'losses': self.short.losses,
                'pnl': self.short.pnl, 'win_rate': self.short.win_rate,
                'largest_win': self.short.largest_win, 'largest_loss': self.short.largest_loss,
            },
        }


class StatisticsAggregator:
    """Maintain `RunningStatistics` one completed trade at a time."""

    def __init__(self) -> None:
        self.stats = RunningStatistics()

    @classmethod
    def replay(cls, trades: Iterable[CompletedTrade]) -> "StatisticsAggregator":
        aggregator = cls()
        for trade in trades:
            aggregator.record(trade)
        return aggregator

    def record(self, trade: CompletedTrade) -> RunningStatistics:
        s = self.stats
        pnl = trade.dollar_pnl
        side = s.per_direction[trade.direction]

        s.total_trades += 1
        s.cumulative_pnl += pnl
        side.trades += 1
        side.pnl += pnl

        if pnl > 0:
            s.winning_trades += 1
            s.gross_profit += pnl
            s.largest_win = max(s.largest_win, pnl)
            side.wins += 1
            side.largest_win = max(side.largest_win, pnl)
            s.consecutive_wins += 1
            s.consecutive_losses = 0
            s.max_consecutive_wins = max(s.max_consecutive_wins, s.consecutive_wins)
        elif pnl < 0:
            s.losing_trades += 1
            s.gross_loss += abs(pnl)
            s.largest_loss = min(s.largest_loss, pnl)
            side.losses += 1
            side.largest_loss = min(side.largest_loss, pnl)
            s.consecutive_losses += 1
            s.consecutive_wins = 0
            s.max_consecutive_losses = max(s.max_consecutive_losses, s.consecutive_losses)

        # drawdown is measured from the highest cumulative P&L seen so far
        if s.cumulative_pnl > s.peak_pnl:
            s.peak_pnl = s.cumulative_pnl
            s.current_drawdown = 0.0
        else:
            s.current_drawdown = s.peak_pnl - s.cumulative_pnl
            s.max_drawdown = max(s.max_drawdown, s.current_drawdown)
        return s
