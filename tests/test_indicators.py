import os
import sys
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from ematrail.config.schema import StrategyConfig
from ematrail.data.indicators import add_indicators, atr, ema, indicator_values, true_range

import unittest


def make_bars() -> pd.DataFrame:
    index = pd.date_range("2024-01-02 09:30", periods=3, freq="5min", tz="America/New_York")
    return pd.DataFrame(
        {
            "open": [10.5, 11.0, 11.5],
            "high": [11.0, 12.0, 13.0],
            "low": [10.0, 11.0, 11.0],
            "close": [10.5, 11.5, 12.0],
        },
        index=index,
    )


class TestIndicators(unittest.TestCase):
    def test_ema_recursion(self) -> None:
        # period 3 -> k = 0.5, seeded with the first value
        values = ema(pd.Series([1.0, 2.0, 4.0]), 3).tolist()
        self.assertEqual(values, [1.0, 1.5, 2.75])

    def test_true_range(self) -> None:
        self.assertEqual(true_range(make_bars()).tolist(), [1.0, 1.5, 2.0])

    def test_atr_averages_available_bars(self) -> None:
        values = atr(make_bars(), period=14).tolist()
        self.assertAlmostEqual(values[0], 1.0)
        self.assertAlmostEqual(values[1], 1.25)
        self.assertAlmostEqual(values[2], 1.5)

    def test_atr_smoothing_after_lookback(self) -> None:
        # period 2: a2 = (1 * a1 + tr2) / 2
        values = atr(make_bars(), period=2).tolist()
        self.assertAlmostEqual(values[2], (1.25 + 2.0) / 2)

    def test_indicator_values(self) -> None:
        df = add_indicators(make_bars(), StrategyConfig(fast_period=1, slow_period=3, atr_period=14))
        ind = indicator_values(df, 2)
        self.assertAlmostEqual(ind.fast, 12.0)
        self.assertAlmostEqual(ind.fast_prev, 11.5)
        self.assertAlmostEqual(ind.slow, df['slow'].iloc[2])
        self.assertAlmostEqual(ind.slow_prev, 11.0)
        self.assertAlmostEqual(ind.atr, 1.5)


if __name__ == '__main__':
    unittest.main()
