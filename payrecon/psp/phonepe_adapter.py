"""PhonePe Standard Checkout (v2) adapter."""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from payrecon.errors import AuthError, GatewayError
from payrecon.logging_config import get_logger
from payrecon.services.lifecycle import LifecycleEvent
from .adapter import (
    CheckoutSession,
    GatewayStatus,
    Notification,
    PSPAdapter,
    PSPProvider,
    header,
    object_field,
    parse_gateway_time,
    text_field,
)

logger = get_logger(__name__)


class PhonePeAdapter(PSPAdapter):
    """
    PhonePe authenticates callbacks with an Authorization header equal to
    SHA256("username:password") of the callback credentials configured in
    the merchant dashboard. Amounts are already in paise.
    """

    provider = PSPProvider.PHONEPE
    supports_sdk_orders = True

    NOTIFICATION_STATUS_MAP = {
        "COMPLETED": LifecycleEvent.PAYMENT_SUCCESS,
        "FAILED": LifecycleEvent.PAYMENT_FAILED,
    }
    ORDER_STATUS_MAP = {
        "COMPLETED": LifecycleEvent.PAYMENT_SUCCESS,
        "FAILED": LifecycleEvent.PAYMENT_FAILED,
    }

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        client_version: int = 1,
        api_base: str = "https://api-preprod.phonepe.com/apis/pg-sandbox",
        callback_username: Optional[str] = None,
        callback_password: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not client_id or not client_secret:
            raise ValueError("PhonePe not configured")
        self.client_id = client_id
        self.client_secret = client_secret
        self.client_version = client_version
        self.callback_username = callback_username
        self.callback_password = callback_password
        self._base = api_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0

    # ---------- transport ----------
    def _access_token(self, client: httpx.Client) -> str:
        if self._token and time.time() < self._token_expires_at - 60:
            return self._token
        form = {
            "client_id": self.client_id,
            "client_version": str(self.client_version),
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
        }
        r = client.post(f"{self._base}/v1/oauth/token", data=form)
        if r.status_code >= 400:
            raise GatewayError(f"PhonePe token request returned {r.status_code}", status_code=r.status_code)
        data = r.json()
        self._token = data.get("access_token")
        self._token_expires_at = float(data.get("expires_at") or time.time() + 300)
        if not self._token:
            raise GatewayError("PhonePe token response missing access_token")
        return self._token

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                token = self._access_token(client)
                r = client.request(
                    method,
                    f"{self._base}{path}",
                    json=payload,
                    headers={"Authorization": f"O-Bearer {token}", "Content-Type": "application/json"},
                )
        except httpx.HTTPError as e:
            raise GatewayError(f"PhonePe request failed: {e}") from e
        if r.status_code >= 400:
            logger.warning("gateway_http_error", provider="phonepe", path=path, status_code=r.status_code)
            raise GatewayError(f"PhonePe {method} {path} returned {r.status_code}", status_code=r.status_code)
        return r.json()

    # ---------- capability ----------
    @staticmethod
    def _order_payload(
        merchant_order_id: str,
        amount: int,
        redirect_url: str,
        customer: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        customer = customer or {}
        # udf1 = phone, udf2 = email, udf3 = course reference
        meta = {
            key: value
            for key, value in (
                ("udf1", customer.get("phone")),
                ("udf2", customer.get("email")),
                ("udf3", customer.get("course_reference")),
            )
            if value
        }
        payload: Dict[str, Any] = {
            "merchantOrderId": merchant_order_id,
            "amount": amount,
            "paymentFlow": {"type": "PG_CHECKOUT", "redirectUrl": redirect_url},
        }
        if meta:
            payload["metaInfo"] = meta
        return payload

    def create_order(
        self,
        merchant_order_id: str,
        amount: int,
        redirect_url: str,
        customer: Optional[Dict[str, Any]] = None,
    ) -> CheckoutSession:
        payload = self._order_payload(merchant_order_id, amount, redirect_url, customer)
        data = self._request("POST", "/checkout/v2/pay", payload)
        return CheckoutSession(
            merchant_order_id=merchant_order_id,
            gateway_order_id=data.get("orderId"),
            redirect_url=data.get("redirectUrl"),
            raw=data,
        )

    def create_sdk_order(
        self,
        merchant_order_id: str,
        amount: int,
        redirect_url: str,
        customer: Optional[Dict[str, Any]] = None,
    ) -> CheckoutSession:
        payload = self._order_payload(merchant_order_id, amount, redirect_url, customer)
        data = self._request("POST", "/checkout/v2/sdk/order", payload)
        if not data.get("token"):
            raise GatewayError("PhonePe SDK order response missing token")
        return CheckoutSession(
            merchant_order_id=merchant_order_id,
            gateway_order_id=data.get("orderId"),
            session_token=data.get("token"),
            raw=data,
        )

    def fetch_status(self, merchant_order_id: str) -> GatewayStatus:
        data = self._request("GET", f"/checkout/v2/order/{merchant_order_id}/status")
        meta = data.get("metaInfo") or {}
        return GatewayStatus(
            status=data.get("state"),
            amount=data.get("amount"),
            payment_time=self._payment_time(data),
            customer_info={"phone": meta.get("udf1"), "email": meta.get("udf2"), "course_reference": meta.get("udf3")},
            raw=data,
        )

    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> None:
        if not self.callback_username or not self.callback_password:
            raise AuthError(AuthError.Kind.MISSING, "PhonePe callback credentials not configured")
        presented = header(headers, "Authorization")
        if not presented:
            raise AuthError(AuthError.Kind.MISSING, "Authorization header absent")
        if presented.lower().startswith("sha256 "):
            presented = presented.split(" ", 1)[1]
        expected = hashlib.sha256(f"{self.callback_username}:{self.callback_password}".encode("utf-8")).hexdigest()
        if not hmac.compare_digest(expected.encode("ascii"), presented.strip().lower().encode("utf-8")):
            raise AuthError(AuthError.Kind.MISMATCH, "callback authorization mismatch")

    def parse_notification(self, raw_body: bytes) -> Notification:
        try:
            event = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid PhonePe payload: {e}") from e
        if not isinstance(event, dict):
            raise ValueError("Invalid PhonePe payload: expected an object")

        payload = object_field(event, "payload", "PhonePe")
        amount = payload.get("amount")
        return Notification(
            event_type=text_field(event.get("event")) or text_field(event.get("type")),
            merchant_order_id=text_field(payload.get("merchantOrderId")),
            payment_status=text_field(payload.get("state")) or text_field(payload.get("paymentState")),
            payment_time=self._payment_time(payload),
            amount=amount if isinstance(amount, int) and not isinstance(amount, bool) else None,
            raw=event,
        )

    @staticmethod
    def _payment_time(body: Dict[str, Any]):
        details = body.get("paymentDetails") or []
        if details and isinstance(details, list):
            last = details[-1]
            ts = last.get("timestamp") if isinstance(last, dict) else None
            if ts:
                return parse_gateway_time(ts)
        return parse_gateway_time(body.get("transactionTime"))
