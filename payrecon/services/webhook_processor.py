"""
Webhook processing: verify -> interpret -> transition.

Once a notification is authenticated it is always acknowledged, whether the
transition committed, was an idempotent no-op, or failed to persist.
Unacknowledged deliveries are retried by the gateway indefinitely; lost
writes are repaired by reconciliation instead.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from payrecon.analytics.sink import emit
from payrecon.errors import AuthError, StoreError, TransitionError
from payrecon.logging_config import get_logger
from payrecon.psp.adapter import Notification, PSPAdapter
from payrecon.services import lifecycle
from payrecon.services.lifecycle import OrderStatus
from payrecon.services.order_store import OrderStore
from payrecon.services.webhook_service import WebhookLog

logger = get_logger(__name__)


@dataclass
class WebhookResult:
    outcome: str  # processed | noop | ignored | failed
    merchant_order_id: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None


_LOG_STATUS = {
    "processed": "processed",
    "noop": "processed",
    "ignored": "ignored",
    "failed": "failed",
}


class WebhookProcessor:
    def __init__(
        self,
        adapter: PSPAdapter,
        store: OrderStore,
        webhook_log: Optional[WebhookLog] = None,
        dropped_is_failure: bool = False,
    ):
        self.adapter = adapter
        self.store = store
        self.webhook_log = webhook_log
        self.dropped_is_failure = dropped_is_failure

    @property
    def provider(self) -> str:
        return self.adapter.provider.value

    def handle(self, headers: Mapping[str, str], raw_body: bytes) -> WebhookResult:
        """
        Process one inbound notification.

        Raises:
            AuthError: the notification could not be authenticated; nothing
                was read from or written to the order store
        """
        try:
            self.adapter.verify_webhook(headers, raw_body)
        except AuthError as e:
            logger.warning("webhook_rejected", provider=self.provider, reason=e.kind.value)
            raise

        try:
            notification = self.adapter.parse_notification(raw_body)
        except ValueError as e:
            logger.warning("webhook_unparseable", provider=self.provider, error=str(e))
            event_id = self._log(None, None, None)
            self._finish(event_id, WebhookResult(outcome="ignored", reason="unparseable"), str(e))
            return WebhookResult(outcome="ignored", reason="unparseable")

        event_id = self._log(notification.raw, notification.merchant_order_id, notification.event_type)
        result = self._apply(notification)
        self._finish(event_id, result, result.reason if result.outcome == "failed" else None)
        return result

    def _apply(self, notification: Notification) -> WebhookResult:
        merchant_order_id = notification.merchant_order_id
        if not merchant_order_id:
            logger.warning("webhook_missing_order_id", provider=self.provider, event_type=notification.event_type)
            return WebhookResult(outcome="ignored", reason="missing_order_id")

        event = self.adapter.map_notification_status(notification.payment_status)

        try:
            order = self.store.get(merchant_order_id)
            if order is None:
                logger.warning("webhook_unknown_order", provider=self.provider, merchant_order_id=merchant_order_id)
                return WebhookResult(outcome="ignored", merchant_order_id=merchant_order_id, reason="unknown_order")

            self._check_amount(order.amount, notification)

            new_status = lifecycle.apply(order.status, event, dropped_is_failure=self.dropped_is_failure)
            if new_status is OrderStatus.PENDING:
                logger.info(
                    "webhook_retained_pending",
                    merchant_order_id=merchant_order_id,
                    payment_status=notification.payment_status,
                )
                return WebhookResult(
                    outcome="noop",
                    merchant_order_id=merchant_order_id,
                    status=OrderStatus.PENDING.value,
                    reason="retained_pending",
                )

            rows = self.store.transition(
                merchant_order_id,
                new_status,
                transaction_time=notification.payment_time,
            )
        except TransitionError as e:
            logger.info(
                "webhook_transition_skipped",
                merchant_order_id=merchant_order_id,
                reason=e.kind.value,
                payment_status=notification.payment_status,
                event_type=notification.event_type,
            )
            outcome = "ignored" if e.kind is TransitionError.Kind.UNKNOWN_EVENT else "noop"
            return WebhookResult(outcome=outcome, merchant_order_id=merchant_order_id, reason=e.kind.value)
        except StoreError as e:
            logger.error(
                "webhook_persist_failed",
                provider=self.provider,
                merchant_order_id=merchant_order_id,
                reason=e.kind.value,
                error=str(e),
            )
            emit(
                "webhook_persist_failed",
                {
                    "provider": self.provider,
                    "merchant_order_id": merchant_order_id,
                    "payment_status": notification.payment_status,
                    "reason": e.kind.value,
                },
            )
            return WebhookResult(outcome="failed", merchant_order_id=merchant_order_id, reason=e.kind.value)

        if rows == 0:
            # Lost the race to a concurrent delivery or reconciliation
            return WebhookResult(
                outcome="noop",
                merchant_order_id=merchant_order_id,
                reason=TransitionError.Kind.ALREADY_FINAL.value,
            )
        return WebhookResult(outcome="processed", merchant_order_id=merchant_order_id, status=new_status.value)

    def _check_amount(self, expected: int, notification: Notification) -> None:
        if notification.amount is None or notification.amount == expected:
            return
        logger.warning(
            "webhook_amount_mismatch",
            merchant_order_id=notification.merchant_order_id,
            expected_amount=expected,
            reported_amount=notification.amount,
        )
        emit(
            "webhook_amount_mismatch",
            {
                "provider": self.provider,
                "merchant_order_id": notification.merchant_order_id,
                "expected_amount": expected,
                "reported_amount": notification.amount,
            },
        )

    def _log(self, payload, merchant_order_id, event_type) -> Optional[int]:
        if self.webhook_log is None:
            return None
        return self.webhook_log.log_webhook(self.provider, payload, merchant_order_id, event_type)

    def _finish(self, event_id: Optional[int], result: WebhookResult, error: Optional[str]) -> None:
        if self.webhook_log is None:
            return
        self.webhook_log.update_webhook_status(event_id, _LOG_STATUS[result.outcome], error)
