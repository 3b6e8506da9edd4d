"""
Scheduled reconciliation and sync history
"""
import pytest

from conftest import FakeMarketplace
from orderbridge.core.database import SessionLocal
from orderbridge.core.exceptions import NotFoundError, ValidationError
from orderbridge.domain.order import OrderStatus
from orderbridge.jobs.reconcile_scheduler import (
    FREQUENCIES,
    ReconcileScheduler,
    reconcile_connection,
    resolve_interval,
)
from orderbridge.models.sync_log import SyncLog, SyncStatus
from orderbridge.services.order_repository import OrderRepository
from orderbridge.services.reconciliation_service import ConflictPolicy, ReconcileScope


def test_resolve_interval():
    assert resolve_interval("hourly") == 60
    assert resolve_interval("daily") == FREQUENCIES["daily"] == 1440
    assert resolve_interval("weekly", 15) == 15
    with pytest.raises(ValidationError):
        resolve_interval("monthly")


@pytest.mark.asyncio
async def test_reconcile_connection_writes_sync_log(db, tenant_id, connection, make_order):
    make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-1", marketplace_connection_id=connection.id)
    broken = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-2", marketplace_connection_id=connection.id)
    marketplace = FakeMarketplace(statuses={"TY-1": "Shipped"}, failing_ids={"TY-2"})

    result, sync_log = await reconcile_connection(
        db,
        connection,
        ReconcileScope(tenant_id=tenant_id, connection_id=connection.id),
        adapter=marketplace,
    )

    assert result.from_remote_count == 1
    assert sync_log.status == SyncStatus.PARTIAL.value
    assert sync_log.policy == "marketplace_wins"
    assert sync_log.completed_at is not None
    assert sync_log.stats["from_remote_count"] == 1
    assert sync_log.stats["from_remote"]["failed"] == 1
    assert broken.order_number in sync_log.error_message
    assert connection.last_sync_at is not None


@pytest.mark.asyncio
async def test_reconcile_connection_limited_to_connection(db, tenant_id, connection, make_order):
    make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-OTHER")
    marketplace = FakeMarketplace(statuses={"TY-OTHER": "Shipped"})

    result, sync_log = await reconcile_connection(
        db, connection, ReconcileScope(tenant_id=tenant_id, connection_id=connection.id), adapter=marketplace,
    )

    assert result.from_remote.processed == 0
    assert sync_log.status == SyncStatus.SUCCESS.value


class TestTaskTable:
    def test_create_start_stop_delete(self, tenant_id, connection):
        scheduler = ReconcileScheduler()
        task = scheduler.create_task(tenant_id, connection.id, frequency="daily", policy="manual")

        assert task.interval_minutes == 1440
        assert task.policy == ConflictPolicy.MANUAL
        assert not task.is_active

        scheduler.start_task(task.id)
        assert task.is_active
        assert scheduler.scheduler.get_job(task.job_id) is not None

        scheduler.stop_task(task.id)
        assert not task.is_active
        assert scheduler.scheduler.get_job(task.job_id) is None

        scheduler.delete_task(task.id)
        assert scheduler.get_task(task.id) is None

    def test_custom_interval_and_tenant_filter(self, tenant_id, connection):
        scheduler = ReconcileScheduler()
        mine = scheduler.create_task(tenant_id, connection.id, interval_minutes=5)
        scheduler.create_task("tenant-b", connection.id, task_id="other")

        assert mine.frequency == "custom"
        assert mine.interval_minutes == 5
        assert [t.id for t in scheduler.get_tasks(tenant_id)] == [mine.id]
        assert len(scheduler.get_tasks()) == 2

    def test_invalid_policy(self, tenant_id, connection):
        with pytest.raises(ValidationError):
            ReconcileScheduler().create_task(tenant_id, connection.id, policy="coin_flip")

    def test_unknown_task(self):
        with pytest.raises(NotFoundError):
            ReconcileScheduler().start_task("missing")

    def test_load_from_connections(self, db, tenant_id, connection):
        scheduler = ReconcileScheduler()
        assert scheduler.load_from_connections() == 1

        task = scheduler.get_task(f"connection-{connection.id}")
        assert task.interval_minutes == 30
        assert task.is_active

        connection.sync_enabled = False
        db.commit()
        assert scheduler.load_from_connections() == 0
        assert scheduler.get_task(f"connection-{connection.id}") is None

    @pytest.mark.asyncio
    async def test_started_scheduler_reports_next_run(self, tenant_id, connection):
        scheduler = ReconcileScheduler()
        scheduler.start()
        try:
            task = scheduler.start_task(scheduler.create_task(tenant_id, connection.id).id)
            assert task.next_run_at is not None
        finally:
            scheduler.stop()
        assert not scheduler.is_running


class TestRunNow:
    @pytest.mark.asyncio
    async def test_run_task_now(self, db, tenant_id, connection, make_order):
        order = make_order(status=OrderStatus.CONFIRMED, external_order_id="TY-1", marketplace_connection_id=connection.id)
        marketplace = FakeMarketplace(statuses={"TY-1": "Shipped"})
        scheduler = ReconcileScheduler(session_factory=SessionLocal, adapter_factory=lambda c: marketplace)
        task = scheduler.create_task(tenant_id, connection.id)

        result = await scheduler.run_task_now(task.id)

        assert result.from_remote_count == 1
        assert task.run_count == 1
        assert task.last_status == SyncStatus.SUCCESS.value
        assert task.last_stats["from_remote_count"] == 1
        assert task.last_run_at is not None

        # Drop this session's snapshot before reading the scheduler's writes
        db.rollback()
        assert OrderRepository(db).get(order.id).status == OrderStatus.SHIPPED
        assert db.query(SyncLog).filter(SyncLog.task_id == task.id).count() == 1

    @pytest.mark.asyncio
    async def test_run_skips_inactive_connection(self, db, tenant_id, connection):
        marketplace = FakeMarketplace()
        scheduler = ReconcileScheduler(adapter_factory=lambda c: marketplace)
        task = scheduler.create_task(tenant_id, connection.id)
        connection.is_active = False
        db.commit()

        assert await scheduler.run_task_now(task.id) is None
        assert marketplace.calls == []
        assert task.run_count == 1

    @pytest.mark.asyncio
    async def test_run_with_foreign_connection_fails(self, connection):
        scheduler = ReconcileScheduler(adapter_factory=lambda c: FakeMarketplace())
        task = scheduler.create_task("tenant-b", connection.id)

        assert await scheduler.run_task_now(task.id) is None
        assert task.last_status == SyncStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_run_unknown_task(self):
        with pytest.raises(NotFoundError):
            await ReconcileScheduler().run_task_now("missing")
