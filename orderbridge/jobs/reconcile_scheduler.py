"""
Reconcile Scheduler - periodic order import and two-way status sync per marketplace connection
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from orderbridge.core.database import SessionLocal
from orderbridge.core.exceptions import NotFoundError, ValidationError
from orderbridge.integrations.base import MarketplaceAdapter
from orderbridge.integrations.registry import build_marketplace_adapter_for_connection
from orderbridge.models.integration import ChannelConnection
from orderbridge.models.sync_log import SyncLog, SyncStatus
from orderbridge.services.order_import_service import ImportResult, OrderImporter
from orderbridge.services.reconciliation_service import (
    ConflictPolicy,
    ConflictResolver,
    ReconcileResult,
    ReconcileScope,
    coerce_policy,
)
from orderbridge.services.sync_orchestrator import Destinations

logger = logging.getLogger(__name__)

# Frequency name -> interval in minutes
FREQUENCIES = {
    "hourly": 60,
    "daily": 24 * 60,
    "weekly": 7 * 24 * 60,
}


@dataclass
class ScheduledTask:
    id: str
    tenant_id: str
    connection_id: UUID
    frequency: str
    interval_minutes: int
    policy: ConflictPolicy
    sync_from_remote: bool = True
    sync_to_remote: bool = True
    trigger_workflow: bool = False
    send_notification: bool = False
    import_orders: bool = False
    is_active: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None
    last_stats: dict = field(default_factory=dict)
    next_run_at: Optional[datetime] = None
    run_count: int = 0

    @property
    def job_id(self) -> str:
        return f"reconcile_{self.id}"

    def scope(self) -> ReconcileScope:
        return ReconcileScope(
            tenant_id=self.tenant_id,
            connection_id=self.connection_id,
            sync_from_remote=self.sync_from_remote,
            sync_to_remote=self.sync_to_remote,
            trigger_workflow=self.trigger_workflow,
            send_notification=self.send_notification,
        )


def resolve_interval(frequency: str, interval_minutes: Optional[int] = None) -> int:
    if interval_minutes:
        if interval_minutes <= 0:
            raise ValidationError("Interval must be positive")
        return interval_minutes
    if frequency not in FREQUENCIES:
        raise ValidationError(f"Unknown frequency: {frequency} (use hourly, daily or weekly)")
    return FREQUENCIES[frequency]


def import_window(interval_minutes: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Order date range covered by one scheduled import: the last interval up to now"""
    now = now or datetime.utcnow()
    return now - timedelta(minutes=interval_minutes), now


def sync_status_for(result: ReconcileResult) -> SyncStatus:
    if not result.success:
        return SyncStatus.FAILED
    return SyncStatus.PARTIAL if result.errors else SyncStatus.SUCCESS


async def import_connection_orders(
    db: Session,
    connection: ChannelConnection,
    time_from: Optional[datetime] = None,
    time_to: Optional[datetime] = None,
    adapter: Optional[MarketplaceAdapter] = None,
    max_orders: Optional[int] = None,
    task_id: Optional[str] = None,
) -> Tuple[ImportResult, SyncLog]:
    """Import a connection's marketplace orders and record the run in sync_log"""
    # Default time range: last 24 hours
    time_to = time_to or datetime.utcnow()
    time_from = time_from or time_to - timedelta(hours=24)

    sync_log = SyncLog(
        status=SyncStatus.RUNNING.value,
        sync_type="import",
        tenant_id=connection.tenant_id,
        connection_id=connection.id,
        task_id=task_id,
        stats={},
    )
    db.add(sync_log)
    db.commit()

    try:
        adapter = adapter or build_marketplace_adapter_for_connection(connection)
        result = await OrderImporter(db, adapter).import_orders(
            connection, time_from=time_from, time_to=time_to, max_orders=max_orders
        )
    except Exception as e:
        logger.error(f"Order import failed for {connection}: {e}")
        db.rollback()
        sync_log.mark_completed(SyncStatus.FAILED, {}, str(e))
        db.commit()
        raise

    errors = "; ".join(error.error_message for error in result.errors)
    sync_log.mark_completed(SyncStatus.PARTIAL if result.failed else SyncStatus.SUCCESS, result.stats(), errors or None)
    connection.last_sync_at = datetime.utcnow()
    db.commit()
    return result, sync_log


async def reconcile_connection(
    db: Session,
    connection: ChannelConnection,
    scope: ReconcileScope,
    policy=None,
    adapter: Optional[MarketplaceAdapter] = None,
    destinations: Optional[Destinations] = None,
    task_id: Optional[str] = None,
) -> Tuple[ReconcileResult, SyncLog]:
    """Run one reconciliation for a connection and record it in sync_log"""
    policy = coerce_policy(policy or connection.conflict_policy)
    sync_log = SyncLog(
        status=SyncStatus.RUNNING.value,
        tenant_id=connection.tenant_id,
        connection_id=connection.id,
        task_id=task_id,
        policy=policy.value,
        stats={},
    )
    db.add(sync_log)
    db.commit()

    try:
        adapter = adapter or build_marketplace_adapter_for_connection(connection)
        result = await ConflictResolver(db, adapter, destinations).reconcile(scope, policy)
    except Exception as e:
        logger.error(f"Reconciliation failed for {connection}: {e}")
        db.rollback()
        sync_log.mark_completed(SyncStatus.FAILED, {}, str(e))
        db.commit()
        raise

    errors = "; ".join(result.errors)
    sync_log.mark_completed(sync_status_for(result), result.stats(), errors or None)
    connection.last_sync_at = datetime.utcnow()
    db.commit()

    logger.info(
        f"Reconciled {connection.provider}/{connection.seller_id}: "
        f"from_remote={result.from_remote_count}, to_remote={result.to_remote_count}, "
        f"conflicts={len(result.conflicts)}, errors={len(result.errors)}"
    )
    return result, sync_log


class ReconcileScheduler:
    """
    Owns an AsyncIOScheduler and its reconciliation task table.

    Each run opens its own session from ``session_factory`` and builds the
    marketplace adapter with ``adapter_factory``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        adapter_factory: Callable[[ChannelConnection], MarketplaceAdapter] = build_marketplace_adapter_for_connection,
        destinations: Optional[Destinations] = None,
    ):
        self.scheduler = AsyncIOScheduler()
        self.session_factory = session_factory
        self.adapter_factory = adapter_factory
        self.destinations = destinations
        self.tasks: Dict[str, ScheduledTask] = {}
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if not self.is_running:
            self.scheduler.start()
            self.is_running = True
            logger.info("Reconcile scheduler started")

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Reconcile scheduler stopped")

    # ========== Task table ==========

    def create_task(
        self,
        tenant_id: str,
        connection_id: UUID,
        frequency: str = "hourly",
        interval_minutes: Optional[int] = None,
        policy=None,
        task_id: Optional[str] = None,
        sync_from_remote: bool = True,
        sync_to_remote: bool = True,
        trigger_workflow: bool = False,
        send_notification: bool = False,
        import_orders: bool = False,
    ) -> ScheduledTask:
        task = ScheduledTask(
            id=task_id or f"{tenant_id}-{connection_id}-{int(datetime.utcnow().timestamp())}",
            tenant_id=tenant_id,
            connection_id=connection_id,
            frequency=frequency if not interval_minutes else "custom",
            interval_minutes=resolve_interval(frequency, interval_minutes),
            policy=coerce_policy(policy),
            sync_from_remote=sync_from_remote,
            sync_to_remote=sync_to_remote,
            trigger_workflow=trigger_workflow,
            send_notification=send_notification,
            import_orders=import_orders,
        )
        if task.id in self.tasks:
            self.stop_task(task.id)
        self.tasks[task.id] = task
        logger.info(f"Created reconcile task {task.id} every {task.interval_minutes} minutes")
        return task

    def start_task(self, task_id: str) -> ScheduledTask:
        task = self._get(task_id)
        job = self.scheduler.add_job(
            func=self._run_task,
            trigger=IntervalTrigger(minutes=task.interval_minutes),
            id=task.job_id,
            name=f"Reconcile {task.tenant_id}/{task.connection_id}",
            kwargs={"task_id": task.id},
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
        )
        task.is_active = True
        task.next_run_at = getattr(job, "next_run_time", None)
        logger.info(f"Started reconcile task {task.id}")
        return task

    def stop_task(self, task_id: str) -> ScheduledTask:
        task = self._get(task_id)
        if self.scheduler.get_job(task.job_id):
            self.scheduler.remove_job(task.job_id)
        task.is_active = False
        task.next_run_at = None
        logger.info(f"Stopped reconcile task {task.id}")
        return task

    def delete_task(self, task_id: str):
        self.stop_task(task_id)
        del self.tasks[task_id]
        logger.info(f"Deleted reconcile task {task_id}")

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        return self.tasks.get(task_id)

    def get_tasks(self, tenant_id: Optional[str] = None) -> List[ScheduledTask]:
        return [t for t in self.tasks.values() if tenant_id is None or t.tenant_id == tenant_id]

    async def run_task_now(self, task_id: str) -> Optional[ReconcileResult]:
        self._get(task_id)
        return await self._run_task(task_id)

    def load_from_connections(self) -> int:
        """Create and start one task per active, sync-enabled connection"""
        db = self.session_factory()
        try:
            connections = db.query(ChannelConnection).filter(
                ChannelConnection.is_active == True,
                ChannelConnection.sync_enabled == True,
            ).all()

            active_ids = {f"connection-{c.id}" for c in connections}
            for task_id in [t for t in self.tasks if t.startswith("connection-") and t not in active_ids]:
                self.delete_task(task_id)

            for connection in connections:
                task = self.create_task(
                    tenant_id=connection.tenant_id,
                    connection_id=connection.id,
                    interval_minutes=connection.sync_interval_minutes or FREQUENCIES["hourly"],
                    policy=connection.conflict_policy,
                    task_id=f"connection-{connection.id}",
                    import_orders=True,
                )
                self.start_task(task.id)

            logger.info(f"Scheduled {len(connections)} connection reconcile tasks")
            return len(connections)
        finally:
            db.close()

    def _get(self, task_id: str) -> ScheduledTask:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Scheduled task not found: {task_id}")
        return task

    # ========== Execution ==========

    async def _run_task(self, task_id: str) -> Optional[ReconcileResult]:
        task = self.tasks.get(task_id)
        if task is None:
            logger.warning(f"Reconcile task vanished: {task_id}")
            return None

        db = self.session_factory()
        try:
            connection = db.query(ChannelConnection).filter(ChannelConnection.id == task.connection_id).first()
            if not connection or connection.tenant_id != task.tenant_id:
                logger.warning(f"Connection not found for task {task_id}: {task.connection_id}")
                task.last_status = SyncStatus.FAILED.value
                return None
            if not connection.is_active:
                logger.info(f"Connection inactive, skipping task {task_id}")
                return None

            adapter = self.adapter_factory(connection)
            imported = None
            if task.import_orders:
                time_from, time_to = import_window(task.interval_minutes)
                logger.info(f"Starting scheduled order import: {task_id}")
                imported, _ = await import_connection_orders(
                    db, connection, time_from, time_to, adapter=adapter, task_id=task.id
                )

            logger.info(f"Starting scheduled reconciliation: {task_id}")
            result, sync_log = await reconcile_connection(
                db,
                connection,
                task.scope(),
                policy=task.policy,
                adapter=adapter,
                destinations=self.destinations,
                task_id=task.id,
            )
            task.last_status = sync_log.status
            task.last_stats = result.stats()
            if imported is not None:
                task.last_stats["import"] = imported.stats()
                if imported.failed and sync_log.status == SyncStatus.SUCCESS.value:
                    task.last_status = SyncStatus.PARTIAL.value
            return result

        except Exception as e:
            logger.error(f"Scheduled reconciliation failed for task {task_id}: {e}")
            task.last_status = SyncStatus.FAILED.value
            return None

        finally:
            task.last_run_at = datetime.utcnow()
            task.run_count += 1
            job = self.scheduler.get_job(task.job_id)
            task.next_run_at = getattr(job, "next_run_time", None) if job else None
            db.close()
