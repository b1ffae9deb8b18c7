"""
Pull-based reconciliation.

Queries the gateway's authoritative status for an order and applies it
through the same lifecycle-guarded conditional write the webhook path uses,
so a reconciliation racing a webhook converges on one terminal state.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from payrecon.analytics.sink import emit
from payrecon.errors import GatewayError, ReconcileError, StoreError
from payrecon.logging_config import get_logger
from payrecon.models import Order, ReconLog
from payrecon.psp.adapter import GatewayStatus, PSPAdapter
from payrecon.services import lifecycle
from payrecon.services.lifecycle import LifecycleEvent, OrderStatus
from payrecon.services.order_store import OrderStore, PendingOrder

logger = get_logger(__name__)


class ReconciliationService:
    def __init__(
        self,
        adapter: PSPAdapter,
        store: OrderStore,
        session_factory: Optional[sessionmaker] = None,
        dropped_is_failure: bool = False,
    ):
        self.adapter = adapter
        self.store = store
        self._session_factory = session_factory
        self.dropped_is_failure = dropped_is_failure

    def reconcile(self, merchant_order_id: str) -> Order:
        """
        Converge one order with the gateway and return the resulting row.

        Raises:
            ReconcileError(NOT_FOUND): neither side knows a paid order
            ReconcileError(GATEWAY_UNAVAILABLE): the status query failed
            StoreError: the local store could not be read or written
        """
        order, _ = self._converge(merchant_order_id)
        return order

    def _converge(self, merchant_order_id: str) -> Tuple[Optional[Order], str]:
        """
        Same as `reconcile`, also returning the recorded result:
        ok (nothing to change), repaired (this call wrote the status) or pending.
        """
        order = self.store.get(merchant_order_id)
        if order is not None and OrderStatus(order.status).is_terminal:
            return order, "ok"

        internal = order.status if order is not None else None

        try:
            remote = self.adapter.fetch_status(merchant_order_id)
        except GatewayError as e:
            details = {"error": str(e), "status_code": e.status_code}
            if e.status_code == 404 and order is not None:
                # Created locally but never reached the gateway
                self._record(merchant_order_id, internal, None, "pending", details)
                return order, "pending"
            self._record(merchant_order_id, internal, None, "error", details)
            if e.status_code == 404:
                raise ReconcileError(ReconcileError.Kind.NOT_FOUND, f"order {merchant_order_id} not found") from e
            logger.warning("recon_gateway_unavailable", merchant_order_id=merchant_order_id, error=str(e))
            raise ReconcileError(ReconcileError.Kind.GATEWAY_UNAVAILABLE, str(e)) from e

        event = self.adapter.map_order_status(remote.status)

        if order is None:
            if event is not LifecycleEvent.PAYMENT_SUCCESS:
                self._record(merchant_order_id, None, remote.status, "error", {"error": "unknown_order"})
                raise ReconcileError(ReconcileError.Kind.NOT_FOUND, f"order {merchant_order_id} not found")
            self._reconstruct(merchant_order_id, remote)

        if event is None:
            self._record(merchant_order_id, internal, remote.status, "pending")
            logger.info("recon_still_pending", merchant_order_id=merchant_order_id, external_status=remote.status)
            return order, "pending"

        new_status = lifecycle.apply(OrderStatus.PENDING, event, dropped_is_failure=self.dropped_is_failure)
        if new_status is OrderStatus.PENDING:
            self._record(merchant_order_id, internal, remote.status, "pending")
            return order, "pending"

        rows = self.store.transition(merchant_order_id, new_status, transaction_time=remote.payment_time)
        result = self.store.get(merchant_order_id)
        outcome = "repaired" if rows else "ok"

        self._record(
            merchant_order_id,
            internal,
            remote.status,
            outcome,
            {"status": result.status if result is not None else None},
        )
        logger.info(
            "recon_applied",
            merchant_order_id=merchant_order_id,
            external_status=remote.status,
            status=result.status if result is not None else None,
            rows_affected=rows,
        )
        return result, outcome

    def reconcile_pending(self, older_than_minutes: int = 5, limit: int = 50) -> Dict[str, int]:
        """Reconcile stale PENDING orders, oldest first."""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        orders = self.store.list_pending(cutoff, limit=limit, provider=self.adapter.provider.value)

        counts = {"checked": 0, "repaired": 0, "ok": 0, "pending": 0, "errors": 0}
        for order in orders:
            counts["checked"] += 1
            try:
                _, outcome = self._converge(order.merchant_order_id)
            except (ReconcileError, StoreError) as e:
                counts["errors"] += 1
                logger.warning(
                    "recon_order_failed",
                    merchant_order_id=order.merchant_order_id,
                    reason=e.kind.value,
                    error=str(e),
                )
                continue
            counts[outcome] += 1

        logger.info("recon_batch_completed", **counts)
        return counts

    def _reconstruct(self, merchant_order_id: str, remote: GatewayStatus) -> None:
        if not remote.amount or remote.amount <= 0:
            raise ReconcileError(
                ReconcileError.Kind.NOT_FOUND,
                f"gateway reported no amount for {merchant_order_id}",
            )
        info = remote.customer_info or {}
        self.store.create(
            PendingOrder(
                merchant_order_id=merchant_order_id,
                amount=remote.amount,
                customer_name=info.get("name"),
                email=info.get("email"),
                phone=info.get("phone"),
                course_reference=info.get("course_reference"),
                provider=self.adapter.provider.value,
            )
        )
        logger.warning("order_reconstructed", merchant_order_id=merchant_order_id, amount=remote.amount)
        emit(
            "order_reconstructed",
            {
                "provider": self.adapter.provider.value,
                "merchant_order_id": merchant_order_id,
                "amount": remote.amount,
            },
        )

    def _record(
        self,
        merchant_order_id: str,
        internal_status: Optional[str],
        external_status: Optional[str],
        result: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self._session_factory is None:
            return
        with self._session_factory() as db:
            try:
                db.add(
                    ReconLog(
                        merchant_order_id=merchant_order_id,
                        internal_status=internal_status,
                        external_status=external_status or "unknown",
                        result=result,
                        details=details,
                    )
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("recon_log_failed", merchant_order_id=merchant_order_id, error=str(e))
