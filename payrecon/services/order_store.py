"""
Durable, race-safe order persistence.

Every transition is a single conditional UPDATE guarded by
`status = 'PENDING'`. Concurrent or repeated deliveries race on that write;
exactly one reports a row affected, the rest see zero and treat it as a
successful no-op. No in-process locks are used.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from payrecon.errors import StoreError
from payrecon.logging_config import get_logger
from payrecon.models import Order
from payrecon.services.lifecycle import OrderStatus

logger = get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Human-facing order number: ORD-YYYYMMDD-NNNNNN."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{100000 + secrets.randbelow(900000)}"


@dataclass
class PendingOrder:
    merchant_order_id: str
    amount: int  # in paise
    customer_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    course_reference: Optional[str] = None
    provider: Optional[str] = None

    def __post_init__(self):
        if not self.merchant_order_id:
            raise ValueError("merchant_order_id is required")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise ValueError("amount must be a positive integer in the smallest currency unit")


class OrderStore:
    """Sole owner of order rows. Each call runs in its own short-lived session."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, order: PendingOrder) -> bool:
        """
        Insert a PENDING row. Returns True when a row was inserted and False
        when `merchant_order_id` already existed (idempotent creation).
        """
        row = Order(
            merchant_order_id=order.merchant_order_id,
            status=OrderStatus.PENDING.value,
            amount=order.amount,
            provider=order.provider,
            customer_name=order.customer_name,
            email=order.email,
            phone=order.phone,
            course_reference=order.course_reference,
        )
        with self._session_factory() as db:
            db.add(row)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                if self._exists(db, order.merchant_order_id):
                    logger.info("order_create_duplicate", merchant_order_id=order.merchant_order_id)
                    return False
                raise StoreError(StoreError.Kind.CONFLICT, str(e.orig)) from e
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("order_create_failed", merchant_order_id=order.merchant_order_id, error=str(e))
                raise StoreError(StoreError.Kind.UNAVAILABLE, str(e)) from e

        logger.info("order_created", merchant_order_id=order.merchant_order_id, amount=order.amount)
        return True

    def transition(
        self,
        merchant_order_id: str,
        new_status: Union[OrderStatus, str],
        order_number: Optional[str] = None,
        transaction_time: Optional[datetime] = None,
    ) -> int:
        """
        Move a PENDING order to a terminal status.

        Returns the number of rows affected: 1 when this call committed the
        transition, 0 when the order was already terminal (or absent).
        A SUCCESS transition without an explicit `order_number` draws one,
        redrawing on uniqueness collisions.
        """
        status = OrderStatus(new_status)
        if not status.is_terminal:
            raise ValueError("transition target must be a terminal status")
        if status is OrderStatus.FAILED and order_number:
            raise ValueError("order_number is only assigned on SUCCESS")

        settled_at = transaction_time or datetime.now(timezone.utc)
        attempts = ORDER_NUMBER_ATTEMPTS if status is OrderStatus.SUCCESS and not order_number else 1
        last_error: Optional[IntegrityError] = None

        for _ in range(attempts):
            number = None
            if status is OrderStatus.SUCCESS:
                number = order_number or generate_order_number()

            stmt = (
                update(Order)
                .where(
                    Order.merchant_order_id == merchant_order_id,
                    Order.status == OrderStatus.PENDING.value,
                )
                .values(status=status.value, order_number=number, transaction_time=settled_at)
                .execution_options(synchronize_session=False)
            )

            with self._session_factory() as db:
                try:
                    result = db.execute(stmt)
                    db.commit()
                except IntegrityError as e:
                    db.rollback()
                    last_error = e
                    logger.warning("order_number_collision", merchant_order_id=merchant_order_id, order_number=number)
                    continue
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.error("order_transition_failed", merchant_order_id=merchant_order_id, error=str(e))
                    raise StoreError(StoreError.Kind.UNAVAILABLE, str(e)) from e

            rows = result.rowcount or 0
            logger.info(
                "order_transitioned" if rows else "order_transition_noop",
                merchant_order_id=merchant_order_id,
                status=status.value,
                order_number=number if rows else None,
                rows_affected=rows,
            )
            return rows

        raise StoreError(
            StoreError.Kind.CONFLICT,
            f"could not assign a unique order_number for {merchant_order_id}",
        ) from last_error

    def get(self, merchant_order_id: str) -> Optional[Order]:
        with self._session_factory() as db:
            try:
                return db.execute(
                    select(Order).where(Order.merchant_order_id == merchant_order_id)
                ).scalar_one_or_none()
            except SQLAlchemyError as e:
                logger.error("order_get_failed", merchant_order_id=merchant_order_id, error=str(e))
                raise StoreError(StoreError.Kind.UNAVAILABLE, str(e)) from e

    def list_pending(self, older_than: datetime, limit: int = 50, provider: Optional[str] = None) -> List[Order]:
        """PENDING orders created before `older_than`, oldest first."""
        stmt = select(Order).where(Order.status == OrderStatus.PENDING.value, Order.created_at < older_than)
        if provider:
            stmt = stmt.where(Order.provider == provider)
        with self._session_factory() as db:
            try:
                rows = db.execute(stmt.order_by(Order.created_at.asc()).limit(limit)).scalars().all()
                return list(rows)
            except SQLAlchemyError as e:
                logger.error("order_list_pending_failed", error=str(e))
                raise StoreError(StoreError.Kind.UNAVAILABLE, str(e)) from e

    @staticmethod
    def _exists(db, merchant_order_id: str) -> bool:
        return db.execute(
            select(Order.id).where(Order.merchant_order_id == merchant_order_id)
        ).first() is not None
