import os
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest import mock

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from ematrail.config.schema import Config
from ematrail.execution.models import Direction, FillAction, MarketPosition, OrderIntent, stop_label
from ematrail.execution.mt5_exec import MT5Gateway

import unittest

MAGIC = 20250


def fake_terminal() -> mock.MagicMock:
    api = mock.MagicMock()
    api.DEAL_TYPE_BUY, api.DEAL_TYPE_SELL = 0, 1
    api.DEAL_ENTRY_IN, api.DEAL_ENTRY_OUT = 0, 1
    api.POSITION_TYPE_BUY, api.POSITION_TYPE_SELL = 0, 1
    api.ORDER_TYPE_BUY, api.ORDER_TYPE_SELL = 0, 1
    api.TRADE_RETCODE_DONE = 10009
    api.symbol_info_tick.return_value = SimpleNamespace(bid=100.0, ask=100.25)
    api.order_send.return_value = SimpleNamespace(retcode=10009, deal=1, price=100.25)
    return api


def deal(ticket, kind, entry, price, comment, magic=MAGIC, symbol="NQ", at=None):
    at = at or datetime.now(timezone.utc)
    return SimpleNamespace(ticket=ticket, type=kind, entry=entry, price=price, volume=1.0,
                           comment=comment, magic=magic, symbol=symbol,
                           time_msc=int(at.timestamp() * 1000) + ticket)


class TestMT5Gateway(unittest.TestCase):
    def setUp(self) -> None:
        self.api = fake_terminal()
        patcher = mock.patch("ematrail.data.mt5_data.mt5", self.api)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.gateway = MT5Gateway(Config())

    def test_poll_fills_translates_and_dedupes(self) -> None:
        self.api.history_deals_get.return_value = [
            deal(2, 1, 1, 101.0, "Long Stop"),
            deal(1, 0, 0, 100.25, "Long Entry"),
            deal(3, 0, 0, 99.0, "someone else", magic=1),
        ]
        fills = self.gateway.poll_fills()
        self.assertEqual([f.action for f in fills], [FillAction.ENTRY_BUY, FillAction.EXIT_SELL])
        self.assertEqual([f.order_label for f in fills], ["Long Entry", "Long Stop"])
        self.assertEqual(fills[1].price, 101.0)
        self.assertEqual(self.gateway.poll_fills(), [])

    def test_poll_fills_moves_window_to_newest_deal(self) -> None:
        entry_time = datetime.now(timezone.utc) + timedelta(minutes=5)
        exit_time = entry_time + timedelta(minutes=10)
        self.api.history_deals_get.return_value = [deal(1, 0, 0, 100.25, "Long Entry", at=entry_time)]
        self.assertEqual(len(self.gateway.poll_fills()), 1)

        self.api.history_deals_get.return_value = [deal(2, 1, 1, 101.0, "Long Stop", at=exit_time)]
        self.assertEqual([f.order_label for f in self.gateway.poll_fills()], ["Long Stop"])
        window_start = self.api.history_deals_get.call_args[0][0]
        self.assertAlmostEqual((window_start - (entry_time - timedelta(minutes=1))).total_seconds(), 0.0, places=1)

        # the entry deal is now older than the query window and is forgotten
        self.assertEqual(list(self.gateway._seen_deals), [2])
        self.assertEqual(self.gateway.poll_fills(), [])
        window_start = self.api.history_deals_get.call_args[0][0]
        self.assertAlmostEqual((window_start - (exit_time - timedelta(minutes=1))).total_seconds(), 0.0, places=1)

    def test_poll_position(self) -> None:
        self.api.positions_get.return_value = [SimpleNamespace(ticket=7, type=1, volume=2.0, magic=MAGIC)]
        snapshot = self.gateway.poll_position()
        self.assertIs(snapshot.market_position, MarketPosition.SHORT)
        self.assertEqual(snapshot.quantity, 2)
        self.api.positions_get.return_value = []
        self.assertTrue(self.gateway.poll_position().is_flat)

    def test_submit_entry(self) -> None:
        self.gateway.submit(OrderIntent.enter(Direction.SHORT, 1))
        request = self.api.order_send.call_args[0][0]
        self.assertEqual(request["type"], self.api.ORDER_TYPE_SELL)
        self.assertEqual(request["price"], 100.0)
        self.assertEqual(request["comment"], "Short Entry")
        self.assertNotIn("position", request)

    def test_submit_exit_closes_open_ticket(self) -> None:
        self.api.positions_get.return_value = [SimpleNamespace(ticket=7, type=0, volume=1.0, magic=MAGIC)]
        self.gateway.submit(OrderIntent.exit(Direction.LONG, stop_label(Direction.LONG)))
        request = self.api.order_send.call_args[0][0]
        self.assertEqual(request["type"], self.api.ORDER_TYPE_SELL)
        self.assertEqual(request["position"], 7)
        self.assertEqual(request["volume"], 1.0)

    def test_rejected_order_raises(self) -> None:
        self.api.order_send.return_value = SimpleNamespace(retcode=10006, deal=0, price=0.0)
        with self.assertRaises(RuntimeError):
            self.gateway.submit(OrderIntent.enter(Direction.LONG, 1))


if __name__ == '__main__':
    unittest.main()
