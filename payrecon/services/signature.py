"""
Webhook signature verification.

The digest is HMAC-SHA256 over `timestamp + raw_body`, computed on the exact
bytes received. Never re-serialize a parsed payload before verifying.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import time
from typing import Optional, Union

from payrecon.errors import AuthError

BytesLike = Union[bytes, bytearray, str]


def _to_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def compute_signature(secret: str, timestamp: str, raw_body: BytesLike, *, encoding: str = "base64") -> str:
    """Sign `timestamp + raw_body` with `secret`; used by tests and local tooling."""
    digest = hmac.new(_to_bytes(secret), _to_bytes(timestamp) + _to_bytes(raw_body), hashlib.sha256).digest()
    if encoding == "hex":
        return digest.hex()
    return base64.b64encode(digest).decode("ascii")


class SignatureVerifier:
    """
    Fail-closed HMAC verifier.

    Args:
        encoding: "base64" (Cashfree) or "hex"
        tolerance_seconds: reject timestamps further than this from now;
            0 disables the replay window
    """

    def __init__(self, encoding: str = "base64", tolerance_seconds: int = 0):
        if encoding not in ("base64", "hex"):
            raise ValueError(f"Unsupported signature encoding: {encoding}")
        self.encoding = encoding
        self.tolerance_seconds = tolerance_seconds

    def verify(
        self,
        secret: Optional[str],
        timestamp: Optional[str],
        raw_body: BytesLike,
        presented_signature: Optional[str],
    ) -> None:
        if not secret:
            raise AuthError(AuthError.Kind.MISSING, "webhook secret not configured")
        if not presented_signature or not timestamp:
            raise AuthError(AuthError.Kind.MISSING, "signature or timestamp header absent")

        if self.tolerance_seconds > 0:
            self._check_freshness(timestamp)

        expected = compute_signature(secret, timestamp, raw_body, encoding=self.encoding)
        if not hmac.compare_digest(expected.encode("ascii"), presented_signature.strip().encode("utf-8")):
            raise AuthError(AuthError.Kind.MISMATCH, "signature mismatch")

    def _check_freshness(self, timestamp: str) -> None:
        try:
            ts = float(timestamp)
        except ValueError:
            raise AuthError(AuthError.Kind.STALE, "timestamp is not numeric")
        # Gateways send either seconds or milliseconds since epoch
        if ts > 1e12:
            ts = ts / 1000.0
        if abs(time.time() - ts) > self.tolerance_seconds:
            raise AuthError(AuthError.Kind.STALE, "timestamp outside tolerance window")
