import math
import os
import sys
import tempfile
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from ematrail.config.schema import Config
from ematrail.data.csv_data import CSVDataLoader
from ematrail.execution.models import ExitReason
from ematrail.execution.paper_exec import PaperSession
from ematrail.reporting.trade_log import TradeLogWriter

import unittest


def wave_bars(n: int = 240) -> pd.DataFrame:
    """Five-minute bars oscillating around 100 with a 40 bar period."""
    index = pd.date_range("2024-01-02 08:00", periods=n, freq="5min", tz="America/New_York")
    closes = [100.0 + 6.0 * math.sin(2 * math.pi * i / 40) for i in range(n)]
    opens = [closes[0]] + closes[:-1]
    return pd.DataFrame(
        {
            "open": opens,
            "high": [max(o, c) + 0.5 for o, c in zip(opens, closes)],
            "low": [min(o, c) - 0.5 for o, c in zip(opens, closes)],
            "close": closes,
        },
        index=index,
    )


class TestPaperSession(unittest.TestCase):
    def setUp(self) -> None:
        self.config = Config()
        self.config.session.use_time_filter = False
        self.config.strategy.fast_period = 3
        self.config.strategy.slow_period = 8
        self.config.strategy.atr_period = 5

    def test_replay_produces_consistent_trades(self) -> None:
        session = PaperSession(self.config)
        trades, start = session.run(wave_bars())
        self.assertGreater(len(trades), 0)
        self.assertEqual(start, wave_bars().index[8])
        self.assertAlmostEqual(session.engine.stats.cumulative_pnl, sum(t.dollar_pnl for t in trades))
        self.assertEqual([t.trade_number for t in trades], list(range(1, len(trades) + 1)))
        for trade in trades:
            self.assertIn(trade.exit_reason, (ExitReason.STOP_LOSS, ExitReason.CROSSOVER_SIGNAL))
            self.assertGreaterEqual(trade.mfe, 0.0)
            self.assertGreaterEqual(trade.mae, 0.0)
            self.assertGreater(trade.exit_time, trade.entry_time)
        # trades never overlap: one position at a time
        for prev, nxt in zip(trades, trades[1:]):
            self.assertLessEqual(prev.exit_time, nxt.entry_time)

    def test_trading_window_limits_entries(self) -> None:
        self.config.session.use_time_filter = True
        self.config.session.start = "09:00"
        self.config.session.end = "10:00"
        trades, _ = PaperSession(self.config).run(wave_bars())
        for trade in trades:
            local = trade.entry_time.tz_convert("America/New_York")
            self.assertTrue("09:00" <= local.strftime("%H:%M") <= "10:00")

    def test_csv_round_trip_and_trade_log(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            df = wave_bars()
            csv_df = df.copy()
            csv_df.index = csv_df.index.tz_localize(None)
            csv_df.index.name = "time"
            csv_df.to_csv(os.path.join(tmp, "NQ.csv"))

            self.config.data.csv_dir = tmp
            self.config.data.timezone = "America/New_York"
            loaded = CSVDataLoader(tmp, "America/New_York").load("NQ")
            self.assertEqual(len(loaded), len(df))
            self.assertEqual(str(loaded.index.tz), "America/New_York")

            log_path = os.path.join(tmp, "out", "trades.csv")
            session = PaperSession(self.config, sinks=[TradeLogWriter(log_path, self.config)])
            trades, _ = session.run()
            logged = pd.read_csv(log_path)
        self.assertEqual(len(logged), len(trades))
        self.assertEqual(logged["TradeNumber"].tolist(), [t.trade_number for t in trades])


if __name__ == '__main__':
    unittest.main()
