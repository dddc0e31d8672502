"""
End-of-session report generation.

This module turns a finished session into human‑readable artefacts: a
text summary of parameters and performance, a JSON summary of the same
numbers, a CSV of the trades and a PNG chart of cumulative P&L.  Having
a central place for report generation makes it easy to extend the
output formats in future (e.g. HTML reports).
"""

from __future__ import annotations

import os
import json
import logging
from typing import List, Optional, Sequence
import pandas as pd
import matplotlib

# Use non‑interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..config.schema import Config
from ..execution.models import CompletedTrade
from .metrics import compute_metrics
from .statistics import RunningStatistics, StatisticsAggregator
from .trade_log import TRADE_LOG_COLUMNS, build_trade_row

logger = logging.getLogger(__name__)


def _money(value: float) -> str:
    return f"-${abs(value):,.2f}" if value < 0 else f"${value:,.2f}"


def _duration_text(minutes: float) -> str:
    return f"{minutes * 60:.0f} seconds ({minutes:.1f} minutes)"


def render_summary(
    trades: Sequence[CompletedTrade],
    stats: RunningStatistics,
    config: Config,
    session_start: Optional[pd.Timestamp] = None,
    session_end: Optional[pd.Timestamp] = None,
) -> str:
    """Plain-text performance summary for the end of a session."""
    strat = config.strategy
    metrics = compute_metrics(trades)
    session_end = session_end or pd.Timestamp.now(tz="UTC")
    lines: List[str] = [
        "STRATEGY PERFORMANCE SUMMARY",
        "============================",
        f"Instrument: {config.instrument.symbol}",
        f"Session Date: {session_end:%Y-%m-%d}",
    ]
    if session_start is not None:
        lines.append(f"Session Start: {session_start:%Y-%m-%d %H:%M:%S}")
    lines += [
        f"Session End: {session_end:%Y-%m-%d %H:%M:%S}",
        "",
        "TRADING PARAMETERS",
        "==================",
        f"Fast EMA Period: {strat.fast_period}",
        f"Slow EMA Period: {strat.slow_period}",
        f"Trailing Stop Points: {strat.trailing_stop_points}",
        f"ATR Multiplier: {strat.atr_multiplier}",
        f"Profit Trigger Points: {strat.profit_trigger_points}",
        f"Progressive Tightening Rate: {strat.progressive_tightening_rate}",
        f"Trading Direction: {strat.trading_direction.value}",
        f"Time Filter Enabled: {config.session.use_time_filter}",
        f"Trading Hours: {config.session.start} - {config.session.end} ({config.session.timezone})",
        "",
        "PERFORMANCE SUMMARY",
        "===================",
        f"Total Trades: {stats.total_trades}",
        f"Winning Trades: {stats.winning_trades}",
        f"Losing Trades: {stats.losing_trades}",
        f"Overall Win Rate: {stats.win_rate * 100:.1f}%",
        f"Total P&L: {_money(stats.cumulative_pnl)}",
        f"Gross Profit: {_money(stats.gross_profit)}",
        f"Gross Loss: {_money(stats.gross_loss)}",
        f"Profit Factor: {stats.profit_factor:.2f}",
        f"Average Win: {_money(stats.average_win)}",
        f"Average Loss: {_money(stats.average_loss)}",
        f"Largest Win: {_money(stats.largest_win)}",
        f"Largest Loss: {_money(stats.largest_loss)}",
        f"Max Drawdown: {_money(stats.max_drawdown)}",
        f"Max Consecutive Wins: {stats.max_consecutive_wins}",
        f"Max Consecutive Losses: {stats.max_consecutive_losses}",
        "",
        "DIRECTIONAL BREAKDOWN",
        "=====================",
        f"Long Trades: {stats.long.trades} (Win Rate: {stats.long.win_rate * 100:.1f}%, P&L: {_money(stats.long.pnl)})",
        f"Short Trades: {stats.short.trades} (Win Rate: {stats.short.win_rate * 100:.1f}%, P&L: {_money(stats.short.pnl)})",
        "",
        "TRADE DURATION",
        "==============",
    ]
    if trades:
        lines += [
            f"Average Duration: {_duration_text(metrics['avg_duration_min'])}",
            f"Shortest Trade: {_duration_text(metrics['min_duration_min'])}",
            f"Longest Trade: {_duration_text(metrics['max_duration_min'])}",
        ]
    else:
        lines += ["Average Duration: N/A", "Shortest Trade: N/A", "Longest Trade: N/A"]
    return "\n".join(lines) + "\n"


def generate_session_report(
    trades: Sequence[CompletedTrade],
    config: Config,
    out_dir: str = "results",
    stats: Optional[RunningStatistics] = None,
    session_start: Optional[pd.Timestamp] = None,
) -> None:
    """Generate report files for a finished session.

    Creates the output directory if it does not exist and writes the
    following files:

    - `session_trades.csv` – every trade with the trade-log columns
    - `summary.txt` – parameters and performance in plain text
    - `summary.json` – running statistics and trade metrics
    - `pnl_curve.png` – line chart of cumulative P&L per trade
    """
    os.makedirs(out_dir, exist_ok=True)
    if stats is None:
        stats = StatisticsAggregator.replay(trades).stats

    # Trades CSV; streak columns come from a replay so each row reflects
    # the statistics right after that trade
    replay = StatisticsAggregator()
    rows = []
    for trade in trades:
        rows.append(build_trade_row(trade, replay.record(trade), config))
    df_trades = pd.DataFrame(rows, columns=TRADE_LOG_COLUMNS)
    df_trades.to_csv(os.path.join(out_dir, 'session_trades.csv'), index=False)

    # Summary text and JSON
    with open(os.path.join(out_dir, 'summary.txt'), 'w', encoding='utf-8') as fh:
        fh.write(render_summary(trades, stats, config, session_start=session_start))
    summary = {'statistics': stats.to_dict(), 'metrics': compute_metrics(trades)}
    with open(os.path.join(out_dir, 'summary.json'), 'w', encoding='utf-8') as fh:
        json.dump(summary, fh, indent=2, ensure_ascii=False)

    # Cumulative P&L plot
    fig, ax = plt.subplots(figsize=(10, 4))
    if trades:
        exit_times = pd.to_datetime([pd.Timestamp(t.exit_time) for t in trades])
        cumulative = pd.Series([t.dollar_pnl for t in trades]).cumsum()
        ax.plot(exit_times, cumulative.values, linewidth=1.5)
        ax.axhline(0.0, color='grey', linewidth=0.8)
        ax.set_title('Cumulative P&L')
        ax.set_xlabel('Exit time')
        ax.set_ylabel('P&L')
        fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'pnl_curve.png'))
    plt.close(fig)
    logger.info("Session report written to %s", out_dir)
