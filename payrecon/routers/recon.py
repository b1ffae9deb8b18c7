from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import sessionmaker

from payrecon.config import settings
from payrecon.deps import (
    build_reconciliation_service,
    get_dispatcher,
    get_order_store,
    get_session_factory,
    resolve_adapter,
)
from payrecon.errors import StoreError
from payrecon.psp import PSPDispatcher
from payrecon.schemas import ReconRunOut
from payrecon.services.order_store import OrderStore

router = APIRouter()


@router.post("/run", response_model=ReconRunOut)
def run_recon(
    provider: Optional[str] = Query(None),
    older_than_minutes: Optional[int] = Query(None, ge=0, le=60 * 24 * 30),
    limit: Optional[int] = Query(None, ge=1, le=500),
    store: OrderStore = Depends(get_order_store),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    adapter = resolve_adapter(dispatcher, provider or settings.GATEWAY_PROVIDER)
    service = build_reconciliation_service(adapter, store, session_factory)

    try:
        counts = service.reconcile_pending(
            older_than_minutes=settings.RECON_OLDER_THAN_MINUTES if older_than_minutes is None else older_than_minutes,
            limit=limit or settings.RECON_BATCH_LIMIT,
        )
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Order store unavailable: {e.kind.value}")

    return ReconRunOut(provider=adapter.provider.value, **counts)
