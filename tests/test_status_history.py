"""
Append-only status history ledger
"""
from datetime import timedelta

import pytest

from orderbridge.core.exceptions import PersistenceError
from orderbridge.domain.order import OrderStatus, PaymentStatus, StatusHistoryEntry, utcnow
from orderbridge.models.status_history import OrderStatusHistory
from orderbridge.services.status_history import StatusHistoryLedger


def entry(order, old, new, note="", **kwargs) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        order_id=order.id,
        tenant_id=order.tenant_id,
        old_status=old,
        new_status=new,
        note=note,
        **kwargs,
    )


def test_read_all_most_recent_first(db, make_order):
    order = make_order()
    ledger = StatusHistoryLedger(db)
    now = utcnow()

    ledger.append(entry(order, None, OrderStatus.PENDING, "created", changed_at=now - timedelta(minutes=2)))
    ledger.append(entry(order, OrderStatus.PENDING, OrderStatus.PROCESSING, changed_at=now - timedelta(minutes=1)))
    ledger.append(entry(order, OrderStatus.PROCESSING, OrderStatus.CONFIRMED, changed_at=now))

    history = ledger.read_all(order.id)
    assert [h.new_status for h in history] == [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.PENDING]
    assert history[-1].note == "created"


def test_equal_timestamps_keep_insert_order(db, make_order):
    order = make_order()
    ledger = StatusHistoryLedger(db)
    now = utcnow()

    ledger.append(entry(order, OrderStatus.PENDING, OrderStatus.PROCESSING, changed_at=now))
    ledger.append(entry(order, OrderStatus.PROCESSING, OrderStatus.CONFIRMED, changed_at=now))

    history = ledger.read_all(order.id)
    assert [h.new_status for h in history] == [OrderStatus.CONFIRMED, OrderStatus.PROCESSING]


def test_history_is_scoped_to_order(db, make_order):
    first, second = make_order(), make_order()
    ledger = StatusHistoryLedger(db)
    ledger.append(entry(first, OrderStatus.PENDING, OrderStatus.PROCESSING))

    assert len(ledger.read_all(first.id)) == 1
    assert ledger.read_all(second.id) == []


def test_entry_round_trip_fields(db, make_order):
    order = make_order()
    ledger = StatusHistoryLedger(db)
    ledger.append(entry(
        order, OrderStatus.PENDING, OrderStatus.PENDING, "payment in",
        old_payment_status=PaymentStatus.PENDING,
        new_payment_status=PaymentStatus.PAID,
        changed_by="user-7",
    ))

    [stored] = ledger.read_all(order.id)
    assert stored.changed_by == "user-7"
    assert stored.change_type() == "payment"
    assert stored.changed_at.tzinfo is not None


def test_rows_cannot_be_updated(db, make_order):
    order = make_order()
    StatusHistoryLedger(db).append(entry(order, OrderStatus.PENDING, OrderStatus.PROCESSING))

    row = db.query(OrderStatusHistory).filter(OrderStatusHistory.order_id == order.id).one()
    row.note = "rewritten"
    with pytest.raises(PersistenceError):
        db.commit()
    db.rollback()


def test_rows_cannot_be_deleted(db, make_order):
    order = make_order()
    StatusHistoryLedger(db).append(entry(order, OrderStatus.PENDING, OrderStatus.PROCESSING))

    row = db.query(OrderStatusHistory).filter(OrderStatusHistory.order_id == order.id).one()
    db.delete(row)
    with pytest.raises(PersistenceError):
        db.commit()
    db.rollback()
