"""
PSP Adapter Base Class and Interface.
Provides a uniform gateway capability for every vendor:
create_order, fetch_status, verify_webhook and parse_notification.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from payrecon.services.lifecycle import LifecycleEvent


class PSPProvider(str, Enum):
    """Supported PSP providers."""
    CASHFREE = "cashfree"
    PHONEPE = "phonepe"


@dataclass
class CheckoutSession:
    """Result of creating an order at the gateway."""
    merchant_order_id: str
    gateway_order_id: Optional[str] = None
    redirect_url: Optional[str] = None
    session_token: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Notification:
    """A verified webhook body reduced to the fields reconciliation needs."""
    event_type: Optional[str]
    merchant_order_id: Optional[str]
    payment_status: Optional[str]
    payment_time: Optional[datetime] = None
    amount: Optional[int] = None  # in paise
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayStatus:
    """Authoritative order status as reported by the gateway."""
    status: Optional[str]
    amount: Optional[int] = None  # in paise
    payment_time: Optional[datetime] = None
    customer_info: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)


class PSPAdapter(ABC):
    """
    Base adapter for Payment Service Providers.
    All PSP implementations must inherit from this class and declare
    their status vocabularies in the two mapping tables below.
    """

    provider: PSPProvider

    # Gateway status string (upper-cased) -> canonical lifecycle event.
    # Statuses missing from a table map to None (no transition).
    NOTIFICATION_STATUS_MAP: Dict[str, LifecycleEvent] = {}
    ORDER_STATUS_MAP: Dict[str, LifecycleEvent] = {}

    # Gateways with a native mobile SDK flow override create_sdk_order
    supports_sdk_orders = False

    @abstractmethod
    def create_order(
        self,
        merchant_order_id: str,
        amount: int,
        redirect_url: str,
        customer: Optional[Dict[str, Any]] = None,
    ) -> CheckoutSession:
        """
        Create a checkout order at the gateway.

        Args:
            merchant_order_id: Our order key
            amount: Amount in smallest currency unit (paise)
            redirect_url: Browser return URL after payment
            customer: Optional name/email/phone
        """

    def create_sdk_order(
        self,
        merchant_order_id: str,
        amount: int,
        redirect_url: str,
        customer: Optional[Dict[str, Any]] = None,
    ) -> CheckoutSession:
        """Create an order for a mobile SDK. The session carries a token instead of a redirect URL."""
        raise NotImplementedError(f"{self.provider.value} has no mobile SDK order flow")

    @abstractmethod
    def fetch_status(self, merchant_order_id: str) -> GatewayStatus:
        """
        Query the gateway's authoritative order status.

        Raises:
            GatewayError: on transport failures or non-2xx responses
        """

    @abstractmethod
    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> None:
        """
        Authenticate an inbound notification using the exact raw body.

        Raises:
            AuthError: if credentials are missing or do not match
        """

    @abstractmethod
    def parse_notification(self, raw_body: bytes) -> Notification:
        """
        Parse an already-verified body.

        Raises:
            ValueError: if the body is not a recognizable notification
        """

    def map_notification_status(self, payment_status: Any) -> Optional[LifecycleEvent]:
        if not isinstance(payment_status, str):
            return None
        return self.NOTIFICATION_STATUS_MAP.get(payment_status.upper())

    def map_order_status(self, status: Any) -> Optional[LifecycleEvent]:
        if not isinstance(status, str):
            return None
        return self.ORDER_STATUS_MAP.get(status.upper())

    def __repr__(self):
        return f"<{self.__class__.__name__}(provider={getattr(self, 'provider', 'unknown')})>"


# ---------- shared parsing helpers ----------

def rupees_to_paise(value: Any) -> Optional[int]:
    """Convert a decimal rupee amount (e.g. 100.5) to integer paise."""
    if value is None or value == "":
        return None
    try:
        return int((Decimal(str(value)) * 100).to_integral_value())
    except (InvalidOperation, ValueError, OverflowError):
        return None


def parse_gateway_time(value: Any) -> Optional[datetime]:
    """Accept ISO-8601 strings or epoch seconds/milliseconds."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts > 1e12:
            ts = ts / 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if text.isdigit():
        return parse_gateway_time(int(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup for plain dicts and Starlette headers."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, val in headers.items():
        if key.lower() == lowered:
            return val
    return None


def object_field(parent: Dict[str, Any], key: str, what: str) -> Dict[str, Any]:
    """
    Return a nested JSON object, treating absent or null as empty.

    Raises:
        ValueError: if the field holds anything other than an object
    """
    value = parent.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Invalid {what} payload: '{key}' is not an object")
    return value


def text_field(value: Any) -> Optional[str]:
    """Identifiers and statuses must be strings; numbers are accepted and anything else is dropped."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None
