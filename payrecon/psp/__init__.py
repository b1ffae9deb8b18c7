from .adapter import CheckoutSession, GatewayStatus, Notification, PSPAdapter, PSPProvider
from .cashfree_adapter import CashfreeAdapter
from .dispatcher import PSPDispatcher
from .phonepe_adapter import PhonePeAdapter

__all__ = [
    "CheckoutSession",
    "GatewayStatus",
    "Notification",
    "PSPAdapter",
    "PSPProvider",
    "CashfreeAdapter",
    "PhonePeAdapter",
    "PSPDispatcher",
]
