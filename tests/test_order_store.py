import re
import threading
import unittest
from unittest import mock
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from payrecon.errors import StoreError
from payrecon.models import Order
from payrecon.services.lifecycle import OrderStatus
from payrecon.services.order_store import OrderStore, PendingOrder, generate_order_number

from support import TempDatabase


class TestOrderStore(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        self.store = OrderStore(self.db.session_factory)

    def tearDown(self):
        self.db.close()

    def _pending(self, merchant_order_id="ORD-1", amount=49900, **kwargs):
        kwargs.setdefault("provider", "cashfree")
        self.assertTrue(self.store.create(PendingOrder(merchant_order_id=merchant_order_id, amount=amount, **kwargs)))

    def test_create_is_idempotent(self):
        self._pending(email="a@example.com")
        self.assertFalse(self.store.create(PendingOrder(merchant_order_id="ORD-1", amount=100)))

        order = self.store.get("ORD-1")
        self.assertEqual(order.status, "PENDING")
        self.assertEqual(order.amount, 49900)
        self.assertEqual(order.email, "a@example.com")
        self.assertIsNone(order.order_number)
        self.assertIsNone(order.transaction_time)

    def test_pending_order_validates_amount(self):
        for amount in (0, -5, True, 10.5, "100"):
            with self.assertRaises(ValueError):
                PendingOrder(merchant_order_id="ORD-X", amount=amount)
        with self.assertRaises(ValueError):
            PendingOrder(merchant_order_id="", amount=100)

    def test_success_assigns_order_number(self):
        self._pending()
        settled = datetime(2024, 6, 10, 6, 29, 58, tzinfo=timezone.utc)
        self.assertEqual(self.store.transition("ORD-1", OrderStatus.SUCCESS, transaction_time=settled), 1)

        order = self.store.get("ORD-1")
        self.assertEqual(order.status, "SUCCESS")
        self.assertRegex(order.order_number, r"^ORD-\d{8}-\d{6}$")
        self.assertEqual(order.transaction_time.replace(tzinfo=None), settled.replace(tzinfo=None))

    def test_failure_leaves_order_number_empty(self):
        self._pending()
        self.assertEqual(self.store.transition("ORD-1", "FAILED"), 1)
        order = self.store.get("ORD-1")
        self.assertEqual(order.status, "FAILED")
        self.assertIsNone(order.order_number)
        self.assertIsNotNone(order.transaction_time)

    def test_terminal_orders_do_not_move(self):
        self._pending()
        self.assertEqual(self.store.transition("ORD-1", "FAILED"), 1)
        self.assertEqual(self.store.transition("ORD-1", "SUCCESS"), 0)
        self.assertEqual(self.store.transition("ORD-1", "FAILED"), 0)
        self.assertEqual(self.store.get("ORD-1").status, "FAILED")

    def test_transition_of_unknown_order_is_noop(self):
        self.assertEqual(self.store.transition("NOPE", "SUCCESS"), 0)
        self.assertIsNone(self.store.get("NOPE"))

    def test_transition_rejects_bad_targets(self):
        self._pending()
        with self.assertRaises(ValueError):
            self.store.transition("ORD-1", "PENDING")
        with self.assertRaises(ValueError):
            self.store.transition("ORD-1", "FAILED", order_number="ORD-20240101-123456")
        with self.assertRaises(ValueError):
            self.store.transition("ORD-1", "REFUNDED")

    def test_first_committed_wins_under_concurrency(self):
        self._pending()
        results = []
        barrier = threading.Barrier(8)

        def worker(i):
            barrier.wait()
            status = OrderStatus.SUCCESS if i % 2 == 0 else OrderStatus.FAILED
            results.append((status, self.store.transition("ORD-1", status)))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [status for status, rows in results if rows == 1]
        self.assertEqual(len(results), 8)
        self.assertEqual(len(winners), 1)

        order = self.store.get("ORD-1")
        self.assertEqual(order.status, winners[0].value)
        if order.status == "SUCCESS":
            self.assertIsNotNone(order.order_number)
        else:
            self.assertIsNone(order.order_number)

    def test_order_number_collision_is_redrawn(self):
        self._pending("ORD-A")
        self._pending("ORD-B")
        self.store.transition("ORD-A", "SUCCESS", order_number="ORD-20240610-111111")

        numbers = ["ORD-20240610-111111", "ORD-20240610-222222"]
        with mock.patch("payrecon.services.order_store.generate_order_number", side_effect=numbers):
            self.assertEqual(self.store.transition("ORD-B", "SUCCESS"), 1)

        self.assertEqual(self.store.get("ORD-B").order_number, "ORD-20240610-222222")

    def test_explicit_order_number_collision_is_conflict(self):
        self._pending("ORD-A")
        self._pending("ORD-B")
        self.store.transition("ORD-A", "SUCCESS", order_number="ORD-20240610-111111")
        with self.assertRaises(StoreError) as ctx:
            self.store.transition("ORD-B", "SUCCESS", order_number="ORD-20240610-111111")
        self.assertIs(ctx.exception.kind, StoreError.Kind.CONFLICT)
        self.assertEqual(self.store.get("ORD-B").status, "PENDING")

    def test_schema_rejects_success_without_order_number(self):
        self._pending()
        with self.db.session_factory() as session:
            with self.assertRaises(IntegrityError):
                session.execute(update(Order).where(Order.merchant_order_id == "ORD-1").values(status="SUCCESS"))
                session.commit()

    def test_list_pending(self):
        self._pending("OLD-1")
        self._pending("OLD-2", provider="phonepe")
        self._pending("NEW-1")
        self._pending("DONE-1")
        self.store.transition("DONE-1", "FAILED")

        old = datetime.now(timezone.utc) - timedelta(hours=2)
        with self.db.session_factory() as session:
            session.execute(
                update(Order).where(Order.merchant_order_id.in_(["OLD-1", "OLD-2", "DONE-1"])).values(created_at=old)
            )
            session.commit()

        cutoff = datetime.now(timezone.utc) - timedelta(minutes=30)
        self.assertEqual({o.merchant_order_id for o in self.store.list_pending(cutoff)}, {"OLD-1", "OLD-2"})
        self.assertEqual(
            [o.merchant_order_id for o in self.store.list_pending(cutoff, provider="cashfree")], ["OLD-1"]
        )
        self.assertEqual(len(self.store.list_pending(cutoff, limit=1)), 1)

    def test_unavailable_store(self):
        with self.db.engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE orders")
        with self.assertRaises(StoreError) as ctx:
            self.store.get("ORD-1")
        self.assertIs(ctx.exception.kind, StoreError.Kind.UNAVAILABLE)


class TestOrderNumber(unittest.TestCase):
    def test_format(self):
        number = generate_order_number(datetime(2024, 6, 10, tzinfo=timezone.utc))
        self.assertTrue(re.match(r"^ORD-20240610-[1-9]\d{5}$", number))


if __name__ == "__main__":
    unittest.main()
