"""
Error taxonomy for order reconciliation.

AuthError        -> webhook rejected before any mutation (401)
TransitionError  -> non-fatal; idempotent replay or unknown event
StoreError       -> persistence failure; acknowledged on the webhook path,
                    retryable (503) on synchronous paths
ReconcileError   -> surfaced to the caller of a reconciliation
GatewayError     -> transport failure talking to the payment gateway
"""
from enum import Enum
from typing import Optional


class PayReconError(Exception):
    """Base class for all payrecon errors."""


class AuthError(PayReconError):
    class Kind(str, Enum):
        MISSING = "missing"
        MISMATCH = "mismatch"
        STALE = "stale"

    def __init__(self, kind: "AuthError.Kind", message: Optional[str] = None):
        self.kind = kind
        super().__init__(message or f"webhook authentication failed: {kind.value}")


class TransitionError(PayReconError):
    class Kind(str, Enum):
        ALREADY_FINAL = "already_final"
        UNKNOWN_EVENT = "unknown_event"

    def __init__(self, kind: "TransitionError.Kind", message: Optional[str] = None):
        self.kind = kind
        super().__init__(message or kind.value)


class StoreError(PayReconError):
    class Kind(str, Enum):
        UNAVAILABLE = "unavailable"
        CONFLICT = "conflict"

    def __init__(self, kind: "StoreError.Kind", message: Optional[str] = None):
        self.kind = kind
        super().__init__(message or f"order store {kind.value}")


class ReconcileError(PayReconError):
    class Kind(str, Enum):
        GATEWAY_UNAVAILABLE = "gateway_unavailable"
        NOT_FOUND = "not_found"

    def __init__(self, kind: "ReconcileError.Kind", message: Optional[str] = None):
        self.kind = kind
        super().__init__(message or kind.value)


class GatewayError(PayReconError):
    """Raised by gateway adapters on transport or protocol failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
