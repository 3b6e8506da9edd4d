"""
Order Status History Model - append-only audit trail
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Uuid, event
from sqlalchemy.sql import func
from orderbridge.core import Base
from orderbridge.core.exceptions import PersistenceError
from .base import UUIDMixin


class OrderStatusHistory(Base, UUIDMixin):
    """One row per status / payment status change, never updated"""
    __tablename__ = "order_status_history"

    # Per-order insert sequence, breaks ties between equal timestamps
    seq = Column(Integer, nullable=False)

    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False)

    old_status = Column(String(20))
    new_status = Column(String(20), nullable=False)
    old_payment_status = Column(String(20))
    new_payment_status = Column(String(20))

    note = Column(Text)
    changed_by = Column(String(100), default="system", nullable=False)  # system, user id, marketplace-sync, status-trigger
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


@event.listens_for(OrderStatusHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise PersistenceError("order_status_history rows are write-once")


@event.listens_for(OrderStatusHistory, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise PersistenceError("order_status_history rows are write-once")
