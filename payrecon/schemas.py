from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ------------------------------------------------------
# PAYMENT INITIATION
# ------------------------------------------------------

class PayRequest(BaseModel):
    amount: int = Field(..., ge=100, description="minor units (e.g., paise); at least 100")
    redirect_url: str = Field(..., min_length=1)
    merchant_order_id: Optional[str] = Field(None, min_length=1, max_length=64)
    customer_name: Optional[str] = Field(None, max_length=128)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    course_reference: Optional[str] = Field(None, max_length=64)
    mobile_sdk: bool = Field(False, description="return an SDK token instead of a redirect URL")


class PayResponse(BaseModel):
    merchant_order_id: str
    provider: str
    redirect_url: Optional[str] = None
    session_token: Optional[str] = None
    gateway_order_id: Optional[str] = None


# ------------------------------------------------------
# ORDERS
# ------------------------------------------------------

class OrderOut(BaseModel):
    merchant_order_id: str
    status: str
    amount: int
    order_number: Optional[str] = None
    transaction_time: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ------------------------------------------------------
# WEBHOOKS / RECONCILIATION
# ------------------------------------------------------

class WebhookAck(BaseModel):
    """Body returned to the gateway once a notification is authenticated."""
    status: str = "ok"
    outcome: str
    reason: Optional[str] = None


class ReconRunOut(BaseModel):
    provider: str
    checked: int
    repaired: int
    ok: int
    pending: int
    errors: int
