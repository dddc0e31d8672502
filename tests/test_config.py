import os
import sys
import tempfile
import textwrap

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from ematrail.config.schema import Config, TradingDirection, load_config, validate_config

import unittest


class TestConfig(unittest.TestCase):
    def _write(self, text: str) -> str:
        fd, path = tempfile.mkstemp(suffix=".yaml")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(textwrap.dedent(text))
        self.addCleanup(os.remove, path)
        return path

    def test_partial_file_keeps_defaults(self) -> None:
        path = self._write("""
            strategy:
              fast_period: 8
              trading_direction: LongOnly
            session:
              use_time_filter: false
            instrument:
              symbol: ES
              point_value: 50
        """)
        cfg = load_config(path)
        self.assertEqual(cfg.strategy.fast_period, 8)
        self.assertEqual(cfg.strategy.slow_period, 51)
        self.assertIs(cfg.strategy.trading_direction, TradingDirection.LONG_ONLY)
        self.assertFalse(cfg.session.use_time_filter)
        self.assertEqual(cfg.session.start, "08:30")
        self.assertEqual(cfg.instrument.symbol, "ES")
        self.assertEqual(cfg.instrument.point_value, 50)
        self.assertEqual(cfg.instrument.tick_size, 0.25)
        self.assertEqual(cfg.reconcile.debounce_seconds, 2.0)

    def test_empty_file(self) -> None:
        cfg = load_config(self._write(""))
        self.assertEqual(cfg.strategy.trailing_stop_points, 40)
        self.assertEqual(cfg.strategy.warmup_bars, 51)
        self.assertEqual(cfg.mode, "paper")

    def test_out_of_range_values_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_config(self._write("strategy:\n  atr_multiplier: 7.5\n"))
        with self.assertRaises(ValueError):
            load_config(self._write("strategy:\n  progressive_tightening_rate: 0.9\n"))
        with self.assertRaises(ValueError):
            load_config(self._write("strategy:\n  trading_direction: Sideways\n"))

    def test_validate_defaults(self) -> None:
        cfg = Config()
        self.assertIs(validate_config(cfg), cfg)
        cfg.instrument.tick_size = 0
        with self.assertRaises(ValueError):
            validate_config(cfg)

    def test_trading_direction_parse(self) -> None:
        self.assertIs(TradingDirection.parse("short_only"), TradingDirection.SHORT_ONLY)
        self.assertIs(TradingDirection.parse("Both"), TradingDirection.BOTH)


if __name__ == '__main__':
    unittest.main()
