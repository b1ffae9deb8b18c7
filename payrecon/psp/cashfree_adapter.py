"""Cashfree PG adapter."""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

import httpx

from payrecon.errors import GatewayError
from payrecon.logging_config import get_logger
from payrecon.services.lifecycle import LifecycleEvent
from payrecon.services.signature import SignatureVerifier
from .adapter import (
    CheckoutSession,
    GatewayStatus,
    Notification,
    PSPAdapter,
    PSPProvider,
    header,
    object_field,
    parse_gateway_time,
    rupees_to_paise,
    text_field,
)

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"


class CashfreeAdapter(PSPAdapter):
    """
    Cashfree webhooks are signed with base64(HMAC-SHA256(timestamp + body))
    using the client secret. Amounts travel in rupees and are stored in paise.
    """

    provider = PSPProvider.CASHFREE

    # payment.payment_status in webhooks
    NOTIFICATION_STATUS_MAP = {
        "SUCCESS": LifecycleEvent.PAYMENT_SUCCESS,
        "FAILED": LifecycleEvent.PAYMENT_FAILED,
        "CANCELLED": LifecycleEvent.PAYMENT_FAILED,
        "USER_DROPPED": LifecycleEvent.PAYMENT_DROPPED,
    }
    # order_status from GET /orders/{order_id}
    ORDER_STATUS_MAP = {
        "PAID": LifecycleEvent.PAYMENT_SUCCESS,
        "EXPIRED": LifecycleEvent.PAYMENT_FAILED,
        "TERMINATED": LifecycleEvent.PAYMENT_FAILED,
    }

    def __init__(
        self,
        app_id: str,
        secret_key: str,
        api_base: str = "https://sandbox.cashfree.com/pg",
        api_version: str = "2023-08-01",
        timeout: float = 15.0,
        verifier: Optional[SignatureVerifier] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not app_id or not secret_key:
            raise ValueError("Cashfree not configured")
        self.app_id = app_id
        self.secret_key = secret_key
        self._base = api_base.rstrip("/")
        self._headers = {
            "x-client-id": app_id,
            "x-client-secret": secret_key,
            "x-api-version": api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._timeout = timeout
        self._transport = transport
        self.verifier = verifier or SignatureVerifier(encoding="base64")

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                r = client.request(method, f"{self._base}{path}", json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            raise GatewayError(f"Cashfree request failed: {e}") from e
        if r.status_code >= 400:
            logger.warning("gateway_http_error", provider="cashfree", path=path, status_code=r.status_code)
            raise GatewayError(f"Cashfree {method} {path} returned {r.status_code}", status_code=r.status_code)
        return r.json()

    def create_order(
        self,
        merchant_order_id: str,
        amount: int,
        redirect_url: str,
        customer: Optional[Dict[str, Any]] = None,
    ) -> CheckoutSession:
        customer = customer or {}
        payload = {
            "order_id": merchant_order_id,
            "order_amount": round(amount / 100, 2),
            "order_currency": "INR",
            "customer_details": {
                "customer_id": customer.get("phone") or customer.get("email") or merchant_order_id,
                "customer_name": customer.get("name"),
                "customer_email": customer.get("email"),
                "customer_phone": customer.get("phone"),
            },
            "order_meta": {"return_url": redirect_url},
        }
        data = self._request("POST", "/orders", payload)
        return CheckoutSession(
            merchant_order_id=merchant_order_id,
            gateway_order_id=str(data.get("cf_order_id") or "") or None,
            session_token=data.get("payment_session_id"),
            raw=data,
        )

    def fetch_status(self, merchant_order_id: str) -> GatewayStatus:
        data = self._request("GET", f"/orders/{merchant_order_id}")
        cust = data.get("customer_details") or {}
        return GatewayStatus(
            status=data.get("order_status"),
            amount=rupees_to_paise(data.get("order_amount")),
            payment_time=parse_gateway_time(data.get("payment_time") or (data.get("order_meta") or {}).get("payment_time")),
            customer_info={
                "name": cust.get("customer_name"),
                "email": cust.get("customer_email"),
                "phone": cust.get("customer_phone"),
            },
            raw=data,
        )

    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> None:
        self.verifier.verify(
            self.secret_key,
            header(headers, TIMESTAMP_HEADER),
            raw_body,
            header(headers, SIGNATURE_HEADER),
        )

    def parse_notification(self, raw_body: bytes) -> Notification:
        try:
            event = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid Cashfree payload: {e}") from e
        if not isinstance(event, dict):
            raise ValueError("Invalid Cashfree payload: expected an object")

        data = object_field(event, "data", "Cashfree")
        order = object_field(data, "order", "Cashfree")
        payment = object_field(data, "payment", "Cashfree")
        return Notification(
            event_type=text_field(event.get("type")),
            merchant_order_id=text_field(order.get("order_id")),
            payment_status=text_field(payment.get("payment_status")),
            payment_time=parse_gateway_time(payment.get("payment_time") or event.get("event_time")),
            amount=rupees_to_paise(payment.get("payment_amount") or order.get("order_amount")),
            raw=event,
        )
