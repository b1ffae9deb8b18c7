"""
payrecon – SQLAlchemy models

- Orders (the only business entity; owned by OrderStore)
- Webhook Events (audit of authenticated gateway notifications)
- Recon Logs (audit of reconciliation attempts)
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, JSON, CheckConstraint, func,
)
from .db import Base


# =====================================================
# ORDER MODEL
# =====================================================

class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("status IN ('PENDING','SUCCESS','FAILED')", name="ck_orders_status"),
        CheckConstraint(
            "(status = 'SUCCESS' AND order_number IS NOT NULL) OR "
            "(status <> 'SUCCESS' AND order_number IS NULL)",
            name="ck_orders_order_number_success",
        ),
    )

    id = Column(Integer, primary_key=True)
    merchant_order_id = Column(String(64), unique=True, nullable=False, index=True)
    order_number = Column(String(32), unique=True, nullable=True)

    status = Column(String(16), nullable=False, default="PENDING", index=True)
    amount = Column(Integer, nullable=False)  # in paise
    provider = Column(String(32), nullable=True)

    customer_name = Column(String(128), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    course_reference = Column(String(64), nullable=True)

    transaction_time = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(),
                        onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Order(merchant_order_id={self.merchant_order_id}, status={self.status})>"


# =====================================================
# WEBHOOK EVENT LOG
# =====================================================

class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(32), nullable=False, index=True)  # cashfree, phonepe
    merchant_order_id = Column(String(64), nullable=True, index=True)
    event_type = Column(String(64), nullable=True)

    payload = Column(JSON, nullable=True)

    status = Column(String(32), default="received", nullable=False, index=True)  # received, processed, ignored, failed
    error = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WebhookEvent(id={self.id}, provider={self.provider}, status={self.status})>"


# =====================================================
# RECON LOG
# =====================================================

class ReconLog(Base):
    __tablename__ = "recon_logs"

    id = Column(Integer, primary_key=True)
    merchant_order_id = Column(String(64), index=True, nullable=False)

    internal_status = Column(String(16), nullable=True)
    external_status = Column(String(32), nullable=True)
    result = Column(String(16), nullable=False)  # ok | repaired | pending | error
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
