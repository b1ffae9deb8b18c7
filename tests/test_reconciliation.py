import unittest
from datetime import datetime, timezone
from unittest import mock

from sqlalchemy import select

from payrecon.errors import GatewayError, ReconcileError
from payrecon.models import ReconLog
from payrecon.psp import GatewayStatus
from payrecon.services.order_store import OrderStore, PendingOrder
from payrecon.services.reconciliation import ReconciliationService

from support import FakeGateway, TempDatabase


class TestReconciliation(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        self.store = OrderStore(self.db.session_factory)
        self.gateway = FakeGateway()
        self.service = ReconciliationService(self.gateway, self.store, session_factory=self.db.session_factory)

    def tearDown(self):
        self.db.close()

    def _pending(self, merchant_order_id, amount=49900):
        self.store.create(PendingOrder(merchant_order_id=merchant_order_id, amount=amount, provider="cashfree"))

    def _recon_results(self, merchant_order_id):
        with self.db.session_factory() as session:
            rows = session.execute(
                select(ReconLog).where(ReconLog.merchant_order_id == merchant_order_id).order_by(ReconLog.id)
            ).scalars().all()
            return [row.result for row in rows]

    def test_missed_webhook_is_repaired(self):
        self._pending("ORD-2")
        paid_at = datetime(2024, 6, 10, 6, 30, tzinfo=timezone.utc)
        self.gateway.statuses["ORD-2"] = GatewayStatus(status="PAID", amount=49900, payment_time=paid_at)

        order = self.service.reconcile("ORD-2")
        self.assertEqual(order.status, "SUCCESS")
        self.assertIsNotNone(order.order_number)
        self.assertEqual(order.transaction_time.replace(tzinfo=None), paid_at.replace(tzinfo=None))
        self.assertEqual(self._recon_results("ORD-2"), ["repaired"])

    def test_terminal_orders_skip_the_gateway(self):
        self._pending("ORD-1")
        self.store.transition("ORD-1", "FAILED")
        self.gateway.error = GatewayError("should not be called")

        self.assertEqual(self.service.reconcile("ORD-1").status, "FAILED")
        self.assertEqual(self.gateway.fetch_calls, 0)

    def test_expired_order_fails(self):
        self._pending("ORD-3")
        self.gateway.statuses["ORD-3"] = GatewayStatus(status="EXPIRED")
        self.assertEqual(self.service.reconcile("ORD-3").status, "FAILED")

    def test_active_order_stays_pending(self):
        self._pending("ORD-4")
        self.gateway.statuses["ORD-4"] = GatewayStatus(status="ACTIVE")
        self.assertEqual(self.service.reconcile("ORD-4").status, "PENDING")
        self.assertEqual(self._recon_results("ORD-4"), ["pending"])

    def test_missing_local_order_is_reconstructed_when_paid(self):
        self.gateway.statuses["ORD-7"] = GatewayStatus(
            status="PAID",
            amount=25000,
            customer_info={"name": "Asha", "email": "asha@example.com", "phone": "9999999999"},
        )
        with mock.patch("payrecon.services.reconciliation.emit") as emit:
            order = self.service.reconcile("ORD-7")

        self.assertEqual(order.status, "SUCCESS")
        self.assertEqual(order.amount, 25000)
        self.assertEqual(order.email, "asha@example.com")
        self.assertEqual(order.provider, "cashfree")
        self.assertEqual(emit.call_args[0][0], "order_reconstructed")

    def test_missing_local_order_not_paid(self):
        self.gateway.statuses["ORD-8"] = GatewayStatus(status="ACTIVE", amount=25000)
        with self.assertRaises(ReconcileError) as ctx:
            self.service.reconcile("ORD-8")
        self.assertIs(ctx.exception.kind, ReconcileError.Kind.NOT_FOUND)
        self.assertIsNone(self.store.get("ORD-8"))

    def test_unknown_everywhere(self):
        with self.assertRaises(ReconcileError) as ctx:
            self.service.reconcile("ORD-404")
        self.assertIs(ctx.exception.kind, ReconcileError.Kind.NOT_FOUND)

    def test_gateway_unavailable(self):
        self._pending("ORD-5")
        self.gateway.error = GatewayError("502 from gateway", status_code=502)
        with self.assertRaises(ReconcileError) as ctx:
            self.service.reconcile("ORD-5")
        self.assertIs(ctx.exception.kind, ReconcileError.Kind.GATEWAY_UNAVAILABLE)
        self.assertEqual(self.store.get("ORD-5").status, "PENDING")
        self.assertEqual(self._recon_results("ORD-5"), ["error"])

    def test_order_never_reached_gateway(self):
        self._pending("ORD-6")
        self.assertEqual(self.service.reconcile("ORD-6").status, "PENDING")
        self.assertEqual(self._recon_results("ORD-6"), ["pending"])

    def test_converges_after_webhook_won(self):
        self._pending("ORD-9")
        self.gateway.statuses["ORD-9"] = GatewayStatus(status="PAID", amount=49900)
        original = self.gateway.fetch_status

        def webhook_lands_first(merchant_order_id):
            self.store.transition(merchant_order_id, "SUCCESS")
            return original(merchant_order_id)

        with mock.patch.object(self.gateway, "fetch_status", side_effect=webhook_lands_first):
            order = self.service.reconcile("ORD-9")

        self.assertEqual(order.status, "SUCCESS")
        self.assertEqual(self._recon_results("ORD-9"), ["ok"])

    def test_reconcile_pending_batch(self):
        for merchant_order_id in ("B-1", "B-2", "B-3", "B-4"):
            self._pending(merchant_order_id)
        self.gateway.statuses["B-1"] = GatewayStatus(status="PAID", amount=49900)
        self.gateway.statuses["B-2"] = GatewayStatus(status="TERMINATED")
        self.gateway.statuses["B-3"] = GatewayStatus(status="ACTIVE")

        original = self.gateway.fetch_status

        def flaky(merchant_order_id):
            if merchant_order_id == "B-4":
                raise GatewayError("timeout")
            return original(merchant_order_id)

        with mock.patch.object(self.gateway, "fetch_status", side_effect=flaky):
            counts = self.service.reconcile_pending(older_than_minutes=0, limit=10)

        self.assertEqual(counts, {"checked": 4, "repaired": 2, "ok": 0, "pending": 1, "errors": 1})
        self.assertEqual(self.store.get("B-1").status, "SUCCESS")
        self.assertEqual(self.store.get("B-2").status, "FAILED")
        self.assertEqual(self.store.get("B-3").status, "PENDING")

        again = self.service.reconcile_pending(older_than_minutes=0, limit=10)
        self.assertEqual(again["checked"], 2)

    def test_batch_counts_match_recon_log(self):
        for merchant_order_id in ("W-1", "W-2"):
            self._pending(merchant_order_id)
            self.gateway.statuses[merchant_order_id] = GatewayStatus(status="PAID", amount=49900)
        original = self.gateway.fetch_status

        def webhook_wins_w1(merchant_order_id):
            if merchant_order_id == "W-1":
                self.store.transition(merchant_order_id, "SUCCESS")
            return original(merchant_order_id)

        with mock.patch.object(self.gateway, "fetch_status", side_effect=webhook_wins_w1):
            counts = self.service.reconcile_pending(older_than_minutes=0, limit=10)

        self.assertEqual(counts, {"checked": 2, "repaired": 1, "ok": 1, "pending": 0, "errors": 0})
        self.assertEqual(self._recon_results("W-1"), ["ok"])
        self.assertEqual(self._recon_results("W-2"), ["repaired"])


if __name__ == "__main__":
    unittest.main()
