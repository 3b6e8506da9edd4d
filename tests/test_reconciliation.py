"""
Two-way status reconciliation with the marketplace
"""
import pytest

from conftest import FakeMarketplace
from orderbridge.core.exceptions import ValidationError
from orderbridge.domain.order import OrderStatus
from orderbridge.services.order_repository import OrderRepository
from orderbridge.services.reconciliation_service import (
    SYNC_ACTOR,
    ConflictPolicy,
    ConflictResolver,
    ReconcileScope,
    coerce_policy,
)
from orderbridge.services.status_history import StatusHistoryLedger
from orderbridge.services.sync_orchestrator import Destinations


def scope(tenant_id, **kwargs) -> ReconcileScope:
    return ReconcileScope(tenant_id=tenant_id, **kwargs)


@pytest.mark.asyncio
async def test_marketplace_wins_adopts_legal_remote_status(db, tenant_id, make_order):
    order = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-1")
    marketplace = FakeMarketplace(statuses={"TY-1": "Shipped"})

    result = await ConflictResolver(db, marketplace).reconcile(
        scope(tenant_id, sync_to_remote=False), ConflictPolicy.MARKETPLACE_WINS
    )

    assert result.success
    assert result.from_remote_count == 1
    assert result.errors == []
    [conflict] = result.conflicts
    assert conflict.internal_status == OrderStatus.CONFIRMED
    assert conflict.mapped_status == OrderStatus.SHIPPED
    assert conflict.resolution == ConflictPolicy.MARKETPLACE_WINS

    stored = OrderRepository(db).get(order.id)
    assert stored.status == OrderStatus.SHIPPED
    assert not stored.needs_status_push

    [entry] = StatusHistoryLedger(db).read_all(order.id)
    assert entry.old_status == OrderStatus.CONFIRMED
    assert entry.new_status == OrderStatus.SHIPPED
    assert entry.note == "Status synced from marketplace: Shipped"
    assert entry.changed_by == SYNC_ACTOR

    # The marketplace is not told about the status it reported
    assert [c[0] for c in marketplace.calls] == ["get_order_status"]


@pytest.mark.asyncio
async def test_illegal_remote_status_is_escalated(db, tenant_id, make_order):
    order = make_order(status=OrderStatus.PENDING, external_order_id="TY-2")
    marketplace = FakeMarketplace(statuses={"TY-2": "Delivered"})

    result = await ConflictResolver(db, marketplace).reconcile(scope(tenant_id), "marketplace_wins")

    assert result.from_remote_count == 0
    [conflict] = result.conflicts
    assert conflict.resolution == ConflictPolicy.MANUAL
    assert result.from_remote.failed == 1
    assert result.errors == [
        f"Order {order.order_number}: Remote status Delivered is not reachable from pending; left for manual review"
    ]
    assert OrderRepository(db).get(order.id).status == OrderStatus.PENDING
    assert StatusHistoryLedger(db).read_all(order.id) == []


@pytest.mark.asyncio
async def test_manual_policy_only_records(db, tenant_id, make_order):
    order = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-3")
    marketplace = FakeMarketplace(statuses={"TY-3": "Cancelled"})

    result = await ConflictResolver(db, marketplace).reconcile(scope(tenant_id), ConflictPolicy.MANUAL)

    [conflict] = result.conflicts
    assert conflict.resolution == ConflictPolicy.MANUAL
    assert result.errors == []
    assert result.from_remote.succeeded == 1
    assert OrderRepository(db).get(order.id).status == OrderStatus.CONFIRMED
    assert marketplace.business_calls() == [("get_order_status", "TY-3")]


@pytest.mark.asyncio
async def test_internal_wins_pushes_internal_status(db, tenant_id, make_order):
    order = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-4")
    marketplace = FakeMarketplace(statuses={"TY-4": "Created"})

    result = await ConflictResolver(db, marketplace).reconcile(
        scope(tenant_id, sync_to_remote=False), ConflictPolicy.INTERNAL_WINS
    )

    [conflict] = result.conflicts
    assert conflict.resolution == ConflictPolicy.INTERNAL_WINS
    assert conflict.note == "Marketplace order approved"
    assert marketplace.count("approve_order") == 1
    assert OrderRepository(db).get(order.id).status == OrderStatus.CONFIRMED

    [entry] = StatusHistoryLedger(db).read_all(order.id)
    assert entry.old_status == entry.new_status == OrderStatus.CONFIRMED
    assert entry.note == "Marketplace status Created overridden: Marketplace order approved"


@pytest.mark.asyncio
async def test_matching_statuses_are_not_conflicts(db, tenant_id, make_order):
    make_order(status=OrderStatus.SHIPPED, external_order_id="TY-5")
    make_order(status=OrderStatus.PENDING)  # not linked
    marketplace = FakeMarketplace(statuses={"TY-5": "Shipped"})

    result = await ConflictResolver(db, marketplace).reconcile(scope(tenant_id))

    assert result.conflicts == []
    assert result.from_remote.processed == 1
    assert result.from_remote.succeeded == 1


@pytest.mark.asyncio
async def test_per_order_failures_do_not_abort_batch(db, tenant_id, make_order):
    broken = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-6")
    healthy = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-7")
    marketplace = FakeMarketplace(statuses={"TY-7": "Shipped"}, failing_ids={"TY-6"})

    result = await ConflictResolver(db, marketplace).reconcile(scope(tenant_id, sync_to_remote=False))

    assert result.success
    assert result.from_remote.processed == 2
    assert result.from_remote.failed == 1
    assert result.errors == [
        f"Failed to sync order {broken.order_number}: marketplace failed: order TY-6 unavailable"
    ]
    assert OrderRepository(db).get(healthy.id).status == OrderStatus.SHIPPED
    assert OrderRepository(db).get(broken.id).status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
async def test_push_pass_clears_flag(db, tenant_id, make_order):
    order = make_order(status=OrderStatus.CANCELLED, external_order_id="TY-8", needs_status_push=True)
    untouched = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-9")
    marketplace = FakeMarketplace()

    result = await ConflictResolver(db, marketplace).reconcile(scope(tenant_id, sync_from_remote=False))

    assert result.to_remote_count == 1
    assert marketplace.business_calls() == [
        ("reject_order", "TY-8", "Status synced from internal system"),
    ]
    assert not OrderRepository(db).get(order.id).needs_status_push
    assert not OrderRepository(db).get(untouched.id).needs_status_push


@pytest.mark.asyncio
async def test_push_pass_failure_keeps_flag(db, tenant_id, make_order):
    order = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-10", needs_status_push=True)
    marketplace = FakeMarketplace(fail={"approve_order"})

    result = await ConflictResolver(db, marketplace).reconcile(scope(tenant_id, sync_from_remote=False))

    assert result.to_remote_count == 0
    assert result.to_remote.failed == 1
    assert result.errors == [
        f"Failed to sync order {order.order_number} to marketplace: marketplace failed: approve_order rejected"
    ]
    assert OrderRepository(db).get(order.id).needs_status_push


@pytest.mark.asyncio
async def test_adopted_status_triggers_downstream(db, tenant_id, make_order, workflow, notifier):
    order = make_order(status=OrderStatus.SHIPPED, external_order_id="TY-11")
    marketplace = FakeMarketplace(statuses={"TY-11": "Delivered"})

    result = await ConflictResolver(
        db, marketplace, Destinations(marketplace=FakeMarketplace(), workflow=workflow, notification=notifier)
    ).reconcile(scope(tenant_id, trigger_workflow=True, send_notification=True, sync_to_remote=False))

    assert result.errors == []
    assert workflow.count("trigger_workflow") == 1
    assert notifier.count("send_order_status_update_email") == 1
    assert OrderRepository(db).get(order.id).workflow_triggered
    # Adoption entry plus one dispatch entry
    assert len(StatusHistoryLedger(db).read_all(order.id)) == 2


@pytest.mark.asyncio
async def test_other_tenants_are_ignored(db, make_order):
    make_order(tenant_id="tenant-b", status=OrderStatus.CONFIRMED, external_order_id="TY-12")
    marketplace = FakeMarketplace(statuses={"TY-12": "Shipped"})

    result = await ConflictResolver(db, marketplace).reconcile(scope("tenant-a"))

    assert result.from_remote.processed == 0
    assert marketplace.calls == []


def test_unknown_policy_rejected():
    with pytest.raises(ValidationError):
        coerce_policy("first_come")
    assert coerce_policy(None) == ConflictPolicy.MARKETPLACE_WINS


@pytest.mark.asyncio
async def test_pending_push_is_left_to_push_pass(db, tenant_id, make_order):
    order = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-13", needs_status_push=True)
    marketplace = FakeMarketplace(statuses={"TY-13": "Created"})

    result = await ConflictResolver(db, marketplace).reconcile(scope(tenant_id), ConflictPolicy.MARKETPLACE_WINS)

    assert result.success
    assert result.errors == []
    assert result.conflicts == []
    assert result.from_remote.skipped == 1
    assert result.from_remote.failed == 0
    assert result.to_remote_count == 1
    assert marketplace.count("get_order_status") == 0
    assert marketplace.count("approve_order") == 1

    stored = OrderRepository(db).get(order.id)
    assert stored.status == OrderStatus.CONFIRMED
    assert not stored.needs_status_push


@pytest.mark.asyncio
async def test_push_without_marketplace_action_is_not_counted(db, tenant_id, make_order):
    order = make_order(status=OrderStatus.PROCESSING, external_order_id="TY-14", needs_status_push=True)
    marketplace = FakeMarketplace()

    result = await ConflictResolver(db, marketplace).reconcile(scope(tenant_id, sync_from_remote=False))

    assert result.to_remote_count == 0
    assert result.to_remote.processed == 1
    assert result.to_remote.succeeded == 0
    assert result.to_remote.skipped == 1
    assert marketplace.business_calls() == []
    assert not OrderRepository(db).get(order.id).needs_status_push
