"""Shared helpers for the test modules: throwaway databases and a scripted gateway."""
import json
import os
import tempfile
from typing import Dict, Optional

from payrecon.db import build_engine, build_session_factory, init_db
from payrecon.errors import GatewayError
from payrecon.psp.adapter import CheckoutSession, GatewayStatus, Notification, PSPAdapter, PSPProvider
from payrecon.psp.cashfree_adapter import CashfreeAdapter
from payrecon.services.signature import compute_signature

CASHFREE_SECRET = "cf_test_secret"
WEBHOOK_TS = "1718000000"


class TempDatabase:
    """A file-backed SQLite database so separate connections see each other's writes."""

    def __init__(self):
        fd, self.path = tempfile.mkstemp(suffix=".db")
        os.close(fd)
        self.engine = build_engine(f"sqlite:///{self.path}")
        init_db(self.engine)
        self.session_factory = build_session_factory(self.engine)

    def close(self):
        self.engine.dispose()
        if os.path.exists(self.path):
            os.remove(self.path)


class FakeGateway(PSPAdapter):
    """Gateway double speaking the Cashfree status vocabulary."""

    provider = PSPProvider.CASHFREE
    NOTIFICATION_STATUS_MAP = CashfreeAdapter.NOTIFICATION_STATUS_MAP
    ORDER_STATUS_MAP = CashfreeAdapter.ORDER_STATUS_MAP

    def __init__(self):
        self.statuses: Dict[str, GatewayStatus] = {}
        self.error: Optional[GatewayError] = None
        self.fetch_calls = 0
        self.created = []

    def create_order(self, merchant_order_id, amount, redirect_url, customer=None):
        if self.error is not None:
            raise self.error
        self.created.append((merchant_order_id, amount, customer))
        return CheckoutSession(
            merchant_order_id=merchant_order_id,
            gateway_order_id=f"gw_{merchant_order_id}",
            redirect_url=f"https://gateway.test/pay/{merchant_order_id}",
        )

    def fetch_status(self, merchant_order_id):
        self.fetch_calls += 1
        if self.error is not None:
            raise self.error
        if merchant_order_id not in self.statuses:
            raise GatewayError("order not found", status_code=404)
        return self.statuses[merchant_order_id]

    def verify_webhook(self, headers, raw_body):
        return None

    def parse_notification(self, raw_body):
        event = json.loads(raw_body)
        return Notification(
            event_type=event.get("type"),
            merchant_order_id=event.get("order_id"),
            payment_status=event.get("payment_status"),
            amount=event.get("amount"),
            raw=event,
        )


def cashfree_body(merchant_order_id: str, payment_status: str, amount: str = "499.00") -> bytes:
    event = {
        "type": "PAYMENT_SUCCESS_WEBHOOK" if payment_status == "SUCCESS" else "PAYMENT_FAILED_WEBHOOK",
        "event_time": "2024-06-10T12:00:00+05:30",
        "data": {
            "order": {"order_id": merchant_order_id, "order_amount": amount},
            "payment": {
                "payment_status": payment_status,
                "payment_amount": amount,
                "payment_time": "2024-06-10T11:59:58+05:30",
            },
        },
    }
    return json.dumps(event).encode("utf-8")


def cashfree_headers(raw_body: bytes, secret: str = CASHFREE_SECRET, timestamp: str = WEBHOOK_TS) -> Dict[str, str]:
    return {
        "x-webhook-timestamp": timestamp,
        "x-webhook-signature": compute_signature(secret, timestamp, raw_body),
        "content-type": "application/json",
    }
