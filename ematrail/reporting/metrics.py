"""
Performance metrics calculations.

This module provides helpers to compute summary statistics from a list
of completed trades: P&L, win rate, durations and excursions.  They are
used both for the recent-trades panel of the dashboard and for the
end-of-session report, where the running statistics alone do not carry
duration information.
"""

from __future__ import annotations

from typing import List, Sequence

from ..execution.models import CompletedTrade


def compute_metrics(trades: Sequence[CompletedTrade]) -> dict:
    """Compute a set of summary statistics for a run of trades.

    Parameters
    ----------
    trades : sequence of CompletedTrade
        Completed trades in the order they closed.

    Returns
    -------
    dict
        Dictionary of performance metrics.  Durations are in minutes.
    """
    if not trades:
        return {
            'num_trades': 0,
            'total_pnl': 0.0,
            'net_pnl': 0.0,
            'wins': 0,
            'losses': 0,
            'win_rate': 0.0,
            'avg_trade': 0.0,
            'best': 0.0,
            'worst': 0.0,
            'avg_duration_min': 0.0,
            'min_duration_min': 0.0,
            'max_duration_min': 0.0,
            'avg_mfe': 0.0,
            'avg_mae': 0.0,
        }

    pnls = [t.dollar_pnl for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    durations: List[float] = [t.duration.total_seconds() / 60.0 for t in trades]
    total_pnl = sum(pnls)

    return {
        'num_trades': len(trades),
        'total_pnl': total_pnl,
        'net_pnl': sum(t.net_pnl for t in trades),
        'wins': len(wins),
        'losses': len(losses),
        'win_rate': len(wins) / len(trades),
        'avg_trade': total_pnl / len(trades),
        'best': max(wins) if wins else 0.0,
        'worst': min(losses) if losses else 0.0,
        'avg_duration_min': sum(durations) / len(durations),
        'min_duration_min': min(durations),
        'max_duration_min': max(durations),
        'avg_mfe': sum(t.mfe for t in trades) / len(trades),
        'avg_mae': sum(t.mae for t in trades) / len(trades),
    }


def recent_trades(trades: Sequence[CompletedTrade], window: int = 10) -> List[CompletedTrade]:
    """The last `window` trades, oldest first."""
    start = max(0, len(trades) - window)
    return list(trades[start:])


def format_duration(trade: CompletedTrade) -> str:
    """Duration as ``minutes:seconds``."""
    seconds = int(trade.duration.total_seconds())
    return f"{seconds // 60}:{seconds % 60:02d}"
