"""
Per-trade CSV log.

`TradeLogWriter` is the persistence sink of the engine: each completed
trade is appended as one row, together with the running statistics and
the parameters the session ran with, so a log file can be analysed on
its own.  Write failures are logged and the row is dropped; the trading
loop is never interrupted by the file system.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List
import logging
import pandas as pd

from ..config.schema import Config
from ..execution.engine import EngineSink, EngineSnapshot
from ..execution.models import CompletedTrade
from .statistics import RunningStatistics

logger = logging.getLogger(__name__)

TRADE_LOG_COLUMNS: List[str] = [
    "TradeNumber", "EntryTime", "ExitTime", "Direction", "EntryPrice", "ExitPrice", "Quantity",
    "PointsPnL", "DollarPnL", "Commission", "NetPnL", "Duration", "DurationSeconds", "ExitReason",
    "FastEMAEntry", "SlowEMAEntry", "FastEMAExit", "SlowEMAExit", "ATREntry", "ATRExit",
    "InitialStopDistance", "FinalStopDistance", "MaxFavorableExcursion", "MaxAdverseExcursion",
    "BreakevenActivated", "TrailingActivated", "ProfitAtExit", "SessionPnL",
    "TradingDirection", "TimeFilterEnabled", "StartTime", "EndTime",
    "EmaPeriod1", "EmaPeriod2", "TrailingStopPoints", "AtrMultiplier", "ProfitTriggerPoints",
    "ProgressiveTighteningRate", "WinStreak", "LossStreak", "CumulativeTrades",
]

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _round(value: Any, digits: int = 2) -> Any:
    return None if value is None else round(float(value), digits)


def build_trade_row(trade: CompletedTrade, stats: RunningStatistics, config: Config) -> Dict[str, Any]:
    """Flatten a trade into the trade-log column set.

    `stats` must already include `trade`; the streak and cumulative
    columns report the state right after it closed.
    """
    strat = config.strategy
    duration_seconds = trade.duration.total_seconds()
    row = {
        "TradeNumber": trade.trade_number,
        "EntryTime": pd.Timestamp(trade.entry_time).strftime(_TIME_FORMAT),
        "ExitTime": pd.Timestamp(trade.exit_time).strftime(_TIME_FORMAT),
        "Direction": trade.direction.value,
        "EntryPrice": _round(trade.entry_price),
        "ExitPrice": _round(trade.exit_price),
        "Quantity": trade.quantity,
        "PointsPnL": _round(trade.points_pnl),
        "DollarPnL": _round(trade.dollar_pnl),
        "Commission": _round(trade.commission),
        "NetPnL": _round(trade.net_pnl),
        "Duration": _round(duration_seconds / 60.0, 1),
        "DurationSeconds": int(round(duration_seconds)),
        "ExitReason": trade.exit_reason.value,
        "FastEMAEntry": _round(trade.fast_at_entry),
        "SlowEMAEntry": _round(trade.slow_at_entry),
        "FastEMAExit": _round(trade.fast_at_exit),
        "SlowEMAExit": _round(trade.slow_at_exit),
        "ATREntry": _round(trade.atr_at_entry, 4),
        "ATRExit": _round(trade.atr_at_exit, 4),
        "InitialStopDistance": _round(trade.initial_stop_distance),
        "FinalStopDistance": _round(trade.final_stop_distance),
        "MaxFavorableExcursion": _round(trade.mfe),
        "MaxAdverseExcursion": _round(trade.mae),
        "BreakevenActivated": trade.breakeven_activated,
        "TrailingActivated": trade.trailing_activated,
        "ProfitAtExit": _round(trade.points_pnl),
        "SessionPnL": _round(stats.cumulative_pnl),
        "TradingDirection": strat.trading_direction.value,
        "TimeFilterEnabled": config.session.use_time_filter,
        "StartTime": config.session.start,
        "EndTime": config.session.end,
        "EmaPeriod1": strat.fast_period,
        "EmaPeriod2": strat.slow_period,
        "TrailingStopPoints": strat.trailing_stop_points,
        "AtrMultiplier": _round(strat.atr_multiplier),
        "ProfitTriggerPoints": strat.profit_trigger_points,
        "ProgressiveTighteningRate": _round(strat.progressive_tightening_rate),
        "WinStreak": stats.consecutive_wins,
        "LossStreak": stats.consecutive_losses,
        "CumulativeTrades": stats.total_trades,
    }
    return row


class TradeLogWriter(EngineSink):
    """Append completed trades to a CSV file."""

    def __init__(self, path: str, config: Config) -> None:
        self.path = Path(path)
        self.config = config

    def on_trade(self, trade: CompletedTrade, stats: RunningStatistics, snapshot: EngineSnapshot) -> None:
        row = build_trade_row(trade, stats, self.config)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_header = not self.path.exists() or self.path.stat().st_size == 0
            pd.DataFrame([row], columns=TRADE_LOG_COLUMNS).to_csv(
                self.path, mode="a", header=write_header, index=False
            )
        except OSError as exc:
            logger.error("Could not append trade #%d to %s: %s", trade.trade_number, self.path, exc)
            return
        logger.info("Trade #%d logged to %s", trade.trade_number, self.path.name)
