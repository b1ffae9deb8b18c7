"""
Payment initiation: POST /v1/payments/{provider}/pay
- Records a PENDING order before redirecting the buyer to the gateway
- Re-initiating an existing PENDING order is allowed; a settled one is 409
- mobile_sdk=true returns a gateway SDK token (PhonePe only)
"""
from __future__ import annotations

from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException

from payrecon.analytics.sink import emit
from payrecon.deps import get_adapter, get_order_store
from payrecon.errors import GatewayError, StoreError
from payrecon.logging_config import get_logger
from payrecon.psp import PSPAdapter
from payrecon.schemas import PayRequest, PayResponse
from payrecon.services.lifecycle import OrderStatus
from payrecon.services.order_store import OrderStore, PendingOrder

router = APIRouter()
logger = get_logger(__name__)


def _new_merchant_order_id() -> str:
    return f"MUID-{uuid4().hex[:16]}"


@router.post("/{provider}/pay", response_model=PayResponse)
def create_payment(
    provider: str,
    body: PayRequest,
    adapter: PSPAdapter = Depends(get_adapter),
    store: OrderStore = Depends(get_order_store),
):
    if body.mobile_sdk and not adapter.supports_sdk_orders:
        raise HTTPException(status_code=400, detail=f"{adapter.provider.value} has no mobile SDK flow")

    merchant_order_id = body.merchant_order_id or _new_merchant_order_id()

    pending = PendingOrder(
        merchant_order_id=merchant_order_id,
        amount=body.amount,
        customer_name=body.customer_name,
        email=body.email,
        phone=body.phone,
        course_reference=body.course_reference,
        provider=adapter.provider.value,
    )

    try:
        created = store.create(pending)
        if not created:
            existing = store.get(merchant_order_id)
            if existing is not None and existing.status != OrderStatus.PENDING.value:
                raise HTTPException(status_code=409, detail=f"Order already {existing.status}")
            if existing is not None and existing.amount != body.amount:
                raise HTTPException(status_code=409, detail="Order exists with a different amount")
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Order store unavailable: {e.kind.value}")

    create = adapter.create_sdk_order if body.mobile_sdk else adapter.create_order
    try:
        session = create(
            merchant_order_id,
            body.amount,
            body.redirect_url,
            customer={
                "name": body.customer_name,
                "email": body.email,
                "phone": body.phone,
                "course_reference": body.course_reference,
            },
        )
    except GatewayError as e:
        logger.error("gateway_create_order_failed", provider=adapter.provider.value,
                     merchant_order_id=merchant_order_id, error=str(e))
        emit("gateway_create_order_failed", {
            "provider": adapter.provider.value,
            "merchant_order_id": merchant_order_id,
            "status_code": e.status_code,
        })
        raise HTTPException(status_code=502, detail="Payment gateway unavailable")

    logger.info("payment_initiated", provider=adapter.provider.value,
                merchant_order_id=merchant_order_id, amount=body.amount, mobile_sdk=body.mobile_sdk)
    return PayResponse(
        merchant_order_id=merchant_order_id,
        provider=adapter.provider.value,
        redirect_url=session.redirect_url,
        session_token=session.session_token,
        gateway_order_id=session.gateway_order_id,
    )
