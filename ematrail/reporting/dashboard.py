"""
Logging dashboard.

The display collaborator of the engine.  Instead of drawing on a chart
it renders the strategy status, the running statistics and the last ten
trades as text and writes them to the log.  Stop level changes are
logged as they happen; the full dashboard is written whenever a trade
closes and, in summary form, every fifth trade.
"""

from __future__ import annotations

from typing import List, Optional
import logging

from ..config.schema import Config, TradingDirection
from ..execution.engine import EngineSink, EngineSnapshot
from ..execution.models import CompletedTrade, MarketPosition
from ..utils.timeutils import describe_session
from .metrics import compute_metrics, format_duration, recent_trades
from .statistics import RunningStatistics

logger = logging.getLogger(__name__)

_DIRECTION_TEXT = {
    TradingDirection.BOTH: "LONG & SHORT",
    TradingDirection.LONG_ONLY: "LONG ONLY",
    TradingDirection.SHORT_ONLY: "SHORT ONLY",
}


def _money(value: float) -> str:
    return f"-${abs(value):,.2f}" if value < 0 else f"${value:,.2f}"


def _unrealized_pnl(snapshot: EngineSnapshot, point_value: float) -> Optional[float]:
    trade = snapshot.open_trade
    if trade is None or snapshot.last_close is None:
        return None
    return trade.direction.sign * (snapshot.last_close - trade.entry_price) * trade.quantity * point_value


def render_status(snapshot: EngineSnapshot, config: Config) -> List[str]:
    pos, ext = snapshot.position, snapshot.external
    lines = [
        "=== STRATEGY STATUS ===",
        f"Position: GATEWAY: {ext.market_position.value} (Qty: {ext.quantity}) | "
        f"OUR: {pos.market_position.value} (Qty: {pos.quantity})",
    ]
    if pos.market_position is not MarketPosition.FLAT:
        pnl = _unrealized_pnl(snapshot, config.instrument.point_value)
        current = _money(pnl) if pnl is not None else "N/A"
        if snapshot.open_trade is not None:
            current += f" | MFE: {_money(snapshot.open_trade.mfe)} | MAE: {_money(snapshot.open_trade.mae)}"
        lines.append(f"Current P&L: {current}")
    else:
        lines.append(f"Current P&L: {_money(snapshot.stats.cumulative_pnl)}")
    if snapshot.stop is not None:
        lines.append(f"Stop: {snapshot.stop.level:.2f} (breakeven={snapshot.stop.breakeven_activated}, "
                     f"trailing={snapshot.stop.trailing_activated})")
    if config.session.use_time_filter:
        state = "OPEN" if snapshot.entries_allowed else "CLOSED"
        lines.append(f"Trading Hours: {state} ({describe_session(config.session)})")
    else:
        lines.append("Trading Hours: 24/7 Trading")
    lines.append(f"Direction: {_DIRECTION_TEXT[config.strategy.trading_direction]}")

    ind = snapshot.indicators
    if ind is not None:
        relation = "ABOVE" if ind.fast > ind.slow else "BELOW"
        lines += [
            "=== EMA STATUS ===",
            f"Fast EMA({config.strategy.fast_period}): {ind.fast:.2f}",
            f"Slow EMA({config.strategy.slow_period}): {ind.slow:.2f}",
            f"Fast is {relation} Slow",
            f"Signal: {snapshot.signal.value}",
        ]
    return lines


def render_statistics(stats: RunningStatistics) -> List[str]:
    if stats.total_trades == 0:
        return []
    lines = [
        "=== TRADING SUMMARY ===",
        f"Total Trades: {stats.total_trades}",
        f"Win Rate: {stats.win_rate * 100:.1f}% ({stats.winning_trades}W/{stats.losing_trades}L)",
        f"Session P&L: {_money(stats.cumulative_pnl)}",
        f"Profit Factor: {stats.profit_factor:.2f}",
    ]
    for name, side in (("LONG", stats.long), ("SHORT", stats.short)):
        lines += [
            f"=== {name} TRADES ===",
            f"{name.title()}: {side.trades} trades",
            f"{name.title()} Win Rate: {side.win_rate * 100:.1f}% ({side.wins}W/{side.losses}L)",
            f"{name.title()} P&L: {_money(side.pnl)}",
        ]
        if side.largest_win > 0:
            lines.append(f"Best {name.title()}: {_money(side.largest_win)}")
        if side.largest_loss < 0:
            lines.append(f"Worst {name.title()}: {_money(side.largest_loss)}")
    lines.append("=== PERFORMANCE ===")
    if stats.average_win > 0:
        lines.append(f"Avg Win: {_money(stats.average_win)}")
    if stats.average_loss > 0:
        lines.append(f"Avg Loss: {_money(stats.average_loss)}")
    lines += [
        f"Max Drawdown: {_money(stats.max_drawdown)}",
        f"Max Consec Wins: {stats.max_consecutive_wins}",
        f"Max Consec Losses: {stats.max_consecutive_losses}",
    ]
    if stats.consecutive_wins > 0:
        streak = f"{stats.consecutive_wins} wins"
    elif stats.consecutive_losses > 0:
        streak = f"{stats.consecutive_losses} losses"
    else:
        streak = "0"
    lines.append(f"Current Streak: {streak}")
    return lines


def render_history(history: List[CompletedTrade], window: int = 10) -> List[str]:
    lines = [f"=== LAST {window} TRADES (TIME, DURATION & P&L) ==="]
    shown = recent_trades(history, window)
    if not shown:
        return lines + ["No trades completed yet", "Waiting for first trade..."]
    lines.append(f"Showing last {len(shown)} trade(s):")
    for trade in shown:
        status = "WIN" if trade.dollar_pnl >= 0 else "LOSS"
        lines.append(
            f"Trade #{trade.trade_number} ({trade.exit_time:%H:%M:%S}) [{format_duration(trade)}]: "
            f"{_money(trade.dollar_pnl)} ({status})"
        )
    m = compute_metrics(shown)
    lines += [
        f"=== LAST {len(shown)} SUMMARY ===",
        f"Total P&L: {_money(m['total_pnl'])}",
        f"Win Rate: {m['win_rate'] * 100:.1f}%",
        f"Wins: {m['wins']} | Losses: {m['losses']}",
        f"Avg Duration: {m['avg_duration_min']:.1f} min",
        f"Duration Range: {m['min_duration_min']:.1f}-{m['max_duration_min']:.1f} min",
    ]
    if m['best'] > 0:
        lines.append(f"Best: {_money(m['best'])}")
    if m['worst'] < 0:
        lines.append(f"Worst: {_money(m['worst'])}")
    return lines


class DashboardSink(EngineSink):
    """Write the dashboard to a logger.

    Parameters
    ----------
    config : Config
        Session configuration, used for labels.
    summary_every : int
        Log the short trading summary every this many trades.
    """

    def __init__(self, config: Config, summary_every: int = 5, log: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.summary_every = summary_every
        self.log = log or logger
        self.last_stop_level: Optional[float] = None

    def on_stop_level(self, level: Optional[float], snapshot: EngineSnapshot) -> None:
        if level is None:
            if self.last_stop_level is not None:
                self.log.info("Stop removed (position flat)")
        elif self.last_stop_level is None:
            self.log.info("Stop set at %.2f", level)
        elif abs(level - self.last_stop_level) > self.config.instrument.tick_size / 2:
            self.log.info("Trailing stop moved from %.2f to %.2f", self.last_stop_level, level)
        self.last_stop_level = level

    def on_statistics(self, snapshot: EngineSnapshot) -> None:
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("\n".join(render_status(snapshot, self.config)))

    def on_trade(self, trade: CompletedTrade, stats: RunningStatistics, snapshot: EngineSnapshot) -> None:
        lines = render_status(snapshot, self.config) + render_statistics(stats)
        lines += render_history(list(snapshot.history))
        self.log.info("\n".join(lines))
        if self.summary_every and stats.total_trades % self.summary_every == 0:
            self.log.info(
                "=== DASHBOARD === trades=%d winners=%d losers=%d win_rate=%.1f%% pnl=%s pf=%.2f",
                stats.total_trades, stats.winning_trades, stats.losing_trades,
                stats.win_rate * 100, _money(stats.cumulative_pnl), stats.profit_factor,
            )
