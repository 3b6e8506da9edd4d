"""
Status History Ledger - append-only audit trail of order status changes
"""
from datetime import timezone
from typing import List
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orderbridge.core.exceptions import PersistenceError
from orderbridge.domain.order import OrderStatus, PaymentStatus, StatusHistoryEntry
from orderbridge.models.status_history import OrderStatusHistory

logger = logging.getLogger(__name__)


class StatusHistoryLedger:
    """
    Write-once ledger keyed by order id.

    Only ``append`` and ``read_all`` are exposed; rows are never updated or
    deleted (the model rejects both at flush time).
    """

    def __init__(self, db: Session):
        self.db = db

    def append(self, entry: StatusHistoryEntry, commit: bool = True) -> StatusHistoryEntry:
        """Persist one entry. Raises PersistenceError only."""
        try:
            last_seq = self.db.query(func.max(OrderStatusHistory.seq)).filter(
                OrderStatusHistory.order_id == entry.order_id
            ).scalar() or 0

            row = OrderStatusHistory(
                id=entry.id,
                seq=last_seq + 1,
                order_id=entry.order_id,
                tenant_id=entry.tenant_id,
                old_status=entry.old_status.value if entry.old_status else None,
                new_status=entry.new_status.value,
                old_payment_status=entry.old_payment_status.value if entry.old_payment_status else None,
                new_payment_status=entry.new_payment_status.value if entry.new_payment_status else None,
                note=entry.note,
                changed_by=entry.changed_by,
                changed_at=entry.changed_at,
            )
            self.db.add(row)
            if commit:
                self.db.commit()
            else:
                self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to append status history for order {entry.order_id}: {e}")
            raise PersistenceError(f"Could not record status history: {e}")

        logger.info(
            f"History: order={entry.order_id} "
            f"{entry.old_status.value if entry.old_status else '-'} -> {entry.new_status.value} "
            f"by {entry.changed_by}"
        )
        return entry

    def read_all(self, order_id: UUID) -> List[StatusHistoryEntry]:
        """All entries for an order, most recent first"""
        try:
            rows = self.db.query(OrderStatusHistory).filter(
                OrderStatusHistory.order_id == order_id
            ).order_by(
                OrderStatusHistory.changed_at.desc(),
                OrderStatusHistory.seq.desc(),
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read status history for order {order_id}: {e}")
            raise PersistenceError(f"Could not read status history: {e}")

        return [self._to_entry(row) for row in rows]

    @staticmethod
    def _to_entry(row: OrderStatusHistory) -> StatusHistoryEntry:
        changed_at = row.changed_at
        if changed_at is not None and changed_at.tzinfo is None:
            # SQLite drops tzinfo; values are always written in UTC
            changed_at = changed_at.replace(tzinfo=timezone.utc)

        return StatusHistoryEntry(
            id=row.id,
            order_id=row.order_id,
            tenant_id=row.tenant_id,
            old_status=OrderStatus(row.old_status) if row.old_status else None,
            new_status=OrderStatus(row.new_status),
            old_payment_status=PaymentStatus(row.old_payment_status) if row.old_payment_status else None,
            new_payment_status=PaymentStatus(row.new_payment_status) if row.new_payment_status else None,
            note=row.note or "",
            changed_by=row.changed_by,
            changed_at=changed_at,
        )
