"""
Order status and on-demand reconciliation.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import sessionmaker

from payrecon.config import settings
from payrecon.deps import (
    build_reconciliation_service,
    get_dispatcher,
    get_order_store,
    get_session_factory,
    resolve_adapter,
)
from payrecon.errors import ReconcileError, StoreError
from payrecon.psp import PSPDispatcher
from payrecon.schemas import OrderOut
from payrecon.services.order_store import OrderStore

router = APIRouter()


@router.get("/{merchant_order_id}", response_model=OrderOut)
def get_order(merchant_order_id: str, store: OrderStore = Depends(get_order_store)):
    try:
        order = store.get(merchant_order_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Order store unavailable: {e.kind.value}")
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/{merchant_order_id}/reconcile", response_model=OrderOut)
def reconcile_order(
    merchant_order_id: str,
    store: OrderStore = Depends(get_order_store),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Query the gateway for this order and repair local state if it diverged."""
    try:
        existing = store.get(merchant_order_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Order store unavailable: {e.kind.value}")

    # Orders unknown locally are looked up at the default gateway
    provider = (existing.provider if existing is not None else None) or settings.GATEWAY_PROVIDER
    adapter = resolve_adapter(dispatcher, provider)
    service = build_reconciliation_service(adapter, store, session_factory)

    try:
        return service.reconcile(merchant_order_id)
    except ReconcileError as e:
        if e.kind is ReconcileError.Kind.NOT_FOUND:
            raise HTTPException(status_code=404, detail="Order not found")
        raise HTTPException(status_code=502, detail="Payment gateway unavailable")
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Order store unavailable: {e.kind.value}")
