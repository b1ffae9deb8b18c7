from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from payrecon.logging_config import get_logger
from payrecon.models import WebhookEvent

logger = get_logger(__name__)


class WebhookLog:
    """
    Audit trail of authenticated webhook deliveries.
    Failures here are logged and never block the acknowledgement.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def log_webhook(
        self,
        provider: str,
        payload: Optional[dict],
        merchant_order_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> Optional[int]:
        """
        Log a raw webhook event to the database.
        Returns the WebhookEvent id.
        """
        with self._session_factory() as db:
            try:
                event = WebhookEvent(
                    provider=provider,
                    merchant_order_id=merchant_order_id,
                    event_type=event_type,
                    payload=payload,
                    status="received",
                )
                db.add(event)
                db.commit()
                return event.id
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("webhook_log_failed", provider=provider, error=str(e))
                return None

    def update_webhook_status(self, event_id: Optional[int], status: str, error: Optional[str] = None) -> None:
        """
        Update the status of a webhook event.
        """
        if event_id is None:
            return
        with self._session_factory() as db:
            try:
                event = db.get(WebhookEvent, event_id)
                if event:
                    event.status = status
                    event.processed_at = datetime.now(timezone.utc)
                    if error:
                        event.error = error
                    db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("webhook_status_update_failed", event_id=event_id, error=str(e))
