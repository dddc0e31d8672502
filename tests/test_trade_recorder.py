import os
import sys
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from ematrail.execution.models import Direction, ExitReason, IndicatorValues
from ematrail.execution.trade_recorder import TradeLifecycleRecorder
from ematrail.strategy.trailing_stop import StopState

import unittest

T0 = pd.Timestamp("2024-01-02 09:30", tz="America/New_York")


class TestTradeLifecycleRecorder(unittest.TestCase):
    def setUp(self) -> None:
        self.recorder = TradeLifecycleRecorder(tick_size=0.25, point_value=20.0,
                                               commission_per_contract=2.5, initial_stop_points=40)

    def test_excursions_are_running_maxima(self) -> None:
        self.recorder.open_trade(Direction.LONG, 100.0, T0, 1)
        seen = []
        for price in (101.0, 99.5, 100.5, 100.0, 102.0):
            self.recorder.update_excursion(price)
            seen.append((self.recorder.open.mfe, self.recorder.open.mae))
        self.assertEqual(seen, [(20.0, 0.0), (20.0, 10.0), (20.0, 10.0), (20.0, 10.0), (40.0, 10.0)])

    def test_short_excursions(self) -> None:
        self.recorder.open_trade(Direction.SHORT, 100.0, T0, 2)
        self.recorder.update_excursion(99.0)
        self.recorder.update_excursion(100.5)
        self.assertAlmostEqual(self.recorder.open.mfe, 40.0)
        self.assertAlmostEqual(self.recorder.open.mae, 20.0)

    def test_excursion_with_explicit_point_value(self) -> None:
        self.recorder.open_trade(Direction.LONG, 100.0, T0, 2)
        self.recorder.update_excursion(101.0, 50.0)
        self.recorder.update_excursion(99.5, 50.0)
        self.assertAlmostEqual(self.recorder.open.mfe, 100.0)
        self.assertAlmostEqual(self.recorder.open.mae, 50.0)
        # omitted point value falls back to the recorder's own
        self.recorder.update_excursion(103.0)
        self.assertAlmostEqual(self.recorder.open.mfe, 120.0)

    def test_update_excursion_when_flat_is_noop(self) -> None:
        self.recorder.update_excursion(101.0)
        self.assertIsNone(self.recorder.open)

    def test_close_long_on_signal(self) -> None:
        entry_ind = IndicatorValues(fast=100.2, fast_prev=99.8, slow=100.0, slow_prev=100.0, atr=0.75)
        exit_ind = IndicatorValues(fast=100.6, fast_prev=101.0, slow=100.8, slow_prev=100.7, atr=1.0)
        self.recorder.open_trade(Direction.LONG, 100.0, T0, 1, entry_ind)
        self.recorder.update_excursion(101.5)
        trade = self.recorder.close_trade(101.0, T0 + pd.Timedelta(minutes=15), 1,
                                          "Long Exit Signal", exit_ind)
        self.assertEqual(trade.trade_number, 1)
        self.assertAlmostEqual(trade.points_pnl, 4.0)
        self.assertAlmostEqual(trade.dollar_pnl, 20.0)
        self.assertAlmostEqual(trade.commission, 2.5)
        self.assertAlmostEqual(trade.net_pnl, 17.5)
        self.assertAlmostEqual(trade.mfe, 30.0)
        self.assertIs(trade.exit_reason, ExitReason.CROSSOVER_SIGNAL)
        self.assertEqual(trade.duration, pd.Timedelta(minutes=15))
        self.assertEqual(trade.fast_at_entry, 100.2)
        self.assertEqual(trade.fast_at_exit, 100.6)
        self.assertEqual(trade.atr_at_exit, 1.0)
        self.assertEqual(trade.initial_stop_distance, 40)
        self.assertTrue(trade.is_win)
        self.assertIsNone(self.recorder.open)
        self.assertEqual(self.recorder.history, [trade])

    def test_close_short_on_stop_carries_stop_flags(self) -> None:
        self.recorder.open_trade(Direction.SHORT, 100.0, T0, 1)
        self.recorder.note_stop(StopState(level=99.5, breakeven_activated=True, trailing_activated=True))
        trade = self.recorder.close_trade(99.5, T0 + pd.Timedelta(minutes=5), 1, "Short Stop")
        self.assertIs(trade.exit_reason, ExitReason.STOP_LOSS)
        self.assertAlmostEqual(trade.dollar_pnl, 10.0)
        self.assertAlmostEqual(trade.points_pnl, 2.0)
        self.assertAlmostEqual(trade.final_stop_distance, 0.0)
        self.assertTrue(trade.breakeven_activated)
        self.assertTrue(trade.trailing_activated)
        self.assertIsNone(trade.fast_at_exit)

    def test_losing_short(self) -> None:
        self.recorder.open_trade(Direction.SHORT, 100.0, T0, 1)
        trade = self.recorder.close_trade(101.0, T0, 1, "Exit")
        self.assertAlmostEqual(trade.dollar_pnl, -20.0)
        self.assertIs(trade.exit_reason, ExitReason.MANUAL_EXIT)
        self.assertTrue(trade.is_loss)

    def test_detached_trade_is_closed_by_late_fill(self) -> None:
        """The gateway may report flat before the exit execution arrives."""
        self.recorder.open_trade(Direction.LONG, 100.0, T0, 1)
        detached = self.recorder.detach()
        self.assertIsNone(self.recorder.open)
        self.assertIs(self.recorder.pending_close, detached)
        trade = self.recorder.close_trade(99.0, T0 + pd.Timedelta(minutes=1), 1, "Long Stop")
        self.assertIsNotNone(trade)
        self.assertAlmostEqual(trade.dollar_pnl, -20.0)
        self.assertIsNone(self.recorder.pending_close)

    def test_exit_without_trade_is_ignored(self) -> None:
        self.assertIsNone(self.recorder.close_trade(100.0, T0, 1, "Long Stop"))
        self.assertEqual(self.recorder.history, [])

    def test_trade_numbers_increase(self) -> None:
        for i in range(3):
            self.recorder.open_trade(Direction.LONG, 100.0, T0, 1)
            self.recorder.close_trade(100.0, T0, 1, "Long Exit Signal")
        self.assertEqual([t.trade_number for t in self.recorder.history], [1, 2, 3])

    def test_exit_reason_from_label(self) -> None:
        self.assertIs(ExitReason.from_label("Long Stop"), ExitReason.STOP_LOSS)
        self.assertIs(ExitReason.from_label("Short Exit Signal"), ExitReason.CROSSOVER_SIGNAL)
        self.assertIs(ExitReason.from_label("Exit"), ExitReason.MANUAL_EXIT)
        self.assertIs(ExitReason.from_label("Close position"), ExitReason.UNKNOWN)
        self.assertIs(ExitReason.from_label(""), ExitReason.UNKNOWN)


if __name__ == '__main__':
    unittest.main()
