from typing import Generator

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import sessionmaker

from .config import settings
from .db import SessionLocal
from .logging_config import get_logger
from .psp import PSPAdapter, PSPDispatcher, PSPProvider
from .services.order_store import OrderStore
from .services.reconciliation import ReconciliationService
from .services.webhook_processor import WebhookProcessor
from .services.webhook_service import WebhookLog

logger = get_logger(__name__)

_dispatcher = PSPDispatcher()


def get_session_factory() -> sessionmaker:
    """Overridden in tests to point at a throwaway database."""
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)) -> Generator:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_dispatcher() -> PSPDispatcher:
    return _dispatcher


def get_order_store(session_factory: sessionmaker = Depends(get_session_factory)) -> OrderStore:
    return OrderStore(session_factory)


def resolve_adapter(dispatcher: PSPDispatcher, provider: str) -> PSPAdapter:
    """
    Look up the adapter for a provider name, translating failures to HTTP.

    Unknown providers are 404; known but unconfigured providers are 503.
    """
    name = (provider or "").lower()
    if name not in {p.value for p in PSPProvider}:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown payment provider '{provider}'",
        )
    try:
        return dispatcher.get_adapter(name)
    except ValueError as e:
        logger.error("gateway_not_configured", provider=name, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not configured",
        )


def get_adapter(provider: str, dispatcher: PSPDispatcher = Depends(get_dispatcher)) -> PSPAdapter:
    """Path-parameter dependency for routes shaped like /{provider}/..."""
    return resolve_adapter(dispatcher, provider)


def get_webhook_processor(
    adapter: PSPAdapter = Depends(get_adapter),
    store: OrderStore = Depends(get_order_store),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> WebhookProcessor:
    return WebhookProcessor(
        adapter,
        store,
        webhook_log=WebhookLog(session_factory),
        dropped_is_failure=settings.DROPPED_IS_FAILURE,
    )


def build_reconciliation_service(
    adapter: PSPAdapter,
    store: OrderStore,
    session_factory: sessionmaker,
) -> ReconciliationService:
    return ReconciliationService(
        adapter,
        store,
        session_factory=session_factory,
        dropped_is_failure=settings.DROPPED_IS_FAILURE,
    )
