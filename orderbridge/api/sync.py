"""
Sync API - Trigger reconciliation and order import, manage scheduled tasks, read sync history
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import List, Optional
import logging

from orderbridge.core.database import get_db
from orderbridge.core.exceptions import NotFoundError, OrderBridgeError
from orderbridge.jobs.reconcile_scheduler import (
    ReconcileScheduler,
    ScheduledTask,
    import_connection_orders,
    reconcile_connection,
)
from orderbridge.models.sync_log import SyncLog
from orderbridge.schemas.sync import (
    ConflictResponse,
    ImportErrorResponse,
    ImportRequest,
    ImportResponse,
    PassResponse,
    ReconcileRequest,
    ReconcileResponse,
    ScheduledTaskCreate,
    ScheduledTaskResponse,
    SyncLogResponse,
)
from orderbridge.services import connection_service
from orderbridge.services.reconciliation_service import ReconcileResult, ReconcileScope, SyncResult
from orderbridge.services.sync_orchestrator import Destinations
from .deps import get_destinations, get_scheduler, get_tenant_id

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger(__name__)


def _pass(result: SyncResult) -> PassResponse:
    return PassResponse(
        processed=result.processed,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        duration_seconds=result.duration_seconds,
    )


def reconcile_response(result: ReconcileResult, sync_log: Optional[SyncLog] = None) -> ReconcileResponse:
    return ReconcileResponse(
        success=result.success,
        sync_log_id=sync_log.id if sync_log else None,
        from_remote_count=result.from_remote_count,
        to_remote_count=result.to_remote_count,
        conflicts=[
            ConflictResponse(
                order_id=c.order_id,
                internal_status=c.internal_status.value,
                remote_status=c.remote_status,
                mapped_status=c.mapped_status.value,
                resolution=c.resolution.value,
                note=c.note,
            )
            for c in result.conflicts
        ],
        errors=result.errors,
        from_remote=_pass(result.from_remote),
        to_remote=_pass(result.to_remote),
    )


def task_response(task: ScheduledTask) -> ScheduledTaskResponse:
    return ScheduledTaskResponse(
        id=task.id,
        tenant_id=task.tenant_id,
        connection_id=task.connection_id,
        frequency=task.frequency,
        interval_minutes=task.interval_minutes,
        policy=task.policy.value,
        import_orders=task.import_orders,
        is_active=task.is_active,
        created_at=task.created_at,
        last_run_at=task.last_run_at,
        last_status=task.last_status,
        next_run_at=task.next_run_at,
        run_count=task.run_count,
    )


def _tenant_task(scheduler: ReconcileScheduler, tenant_id: str, task_id: str) -> ScheduledTask:
    task = scheduler.get_task(task_id)
    if not task or task.tenant_id != tenant_id:
        raise HTTPException(status_code=404, detail="Scheduled task not found")
    return task


# ========== Reconciliation ==========

@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_now(
    data: ReconcileRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    wired: Optional[Destinations] = Depends(get_destinations),
):
    """Run a two-way status sync for one connection and wait for the result"""
    connection = connection_service.get_connection(db, tenant_id, data.connection_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")

    try:
        destinations = (wired or Destinations()).merged(Destinations.from_configs(data.integrations))
        result, sync_log = await reconcile_connection(
            db,
            connection,
            ReconcileScope(
                tenant_id=tenant_id,
                connection_id=connection.id,
                sync_from_remote=data.sync_from_remote,
                sync_to_remote=data.sync_to_remote,
                trigger_workflow=data.trigger_workflow,
                send_notification=data.send_notification,
            ),
            policy=data.policy,
            adapter=destinations.marketplace,
            destinations=destinations,
        )
    except OrderBridgeError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return reconcile_response(result, sync_log)


@router.post("/import", response_model=ImportResponse)
async def import_orders(
    data: ImportRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    wired: Optional[Destinations] = Depends(get_destinations),
):
    """Pull marketplace orders for one connection: new ones are created, known ones updated"""
    connection = connection_service.get_connection(db, tenant_id, data.connection_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")

    try:
        destinations = (wired or Destinations()).merged(Destinations.from_configs(data.integrations))
        result, sync_log = await import_connection_orders(
            db,
            connection,
            time_from=data.time_from,
            time_to=data.time_to,
            adapter=destinations.marketplace,
            max_orders=data.max_orders,
        )
    except OrderBridgeError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return ImportResponse(
        success=not result.failed,
        sync_log_id=sync_log.id,
        processed=result.processed,
        created=result.created,
        updated=result.updated,
        skipped=result.skipped,
        failed=result.failed,
        errors=[ImportErrorResponse(item_id=e.item_id, error_message=e.error_message) for e in result.errors],
        duration_seconds=result.duration_seconds,
    )


@router.get("/logs", response_model=List[SyncLogResponse])
async def list_sync_logs(
    limit: int = Query(20, ge=1, le=100),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return db.query(SyncLog).filter(SyncLog.tenant_id == tenant_id)\
        .order_by(desc(SyncLog.started_at))\
        .limit(limit)\
        .all()


# ========== Scheduled tasks ==========

@router.get("/tasks", response_model=List[ScheduledTaskResponse])
async def list_tasks(
    tenant_id: str = Depends(get_tenant_id),
    scheduler: ReconcileScheduler = Depends(get_scheduler),
):
    return [task_response(t) for t in scheduler.get_tasks(tenant_id)]


@router.post("/tasks", response_model=ScheduledTaskResponse, status_code=201)
async def create_task(
    data: ScheduledTaskCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    scheduler: ReconcileScheduler = Depends(get_scheduler),
):
    connection = connection_service.get_connection(db, tenant_id, data.connection_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")

    try:
        task = scheduler.create_task(
            tenant_id=tenant_id,
            connection_id=connection.id,
            frequency=data.frequency,
            interval_minutes=data.interval_minutes,
            policy=data.policy or connection.conflict_policy,
            sync_from_remote=data.sync_from_remote,
            sync_to_remote=data.sync_to_remote,
            trigger_workflow=data.trigger_workflow,
            send_notification=data.send_notification,
            import_orders=data.import_orders,
        )
        if data.start:
            scheduler.start_task(task.id)
    except OrderBridgeError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return task_response(task)


@router.get("/tasks/{task_id}", response_model=ScheduledTaskResponse)
async def get_task(
    task_id: str,
    tenant_id: str = Depends(get_tenant_id),
    scheduler: ReconcileScheduler = Depends(get_scheduler),
):
    return task_response(_tenant_task(scheduler, tenant_id, task_id))


@router.post("/tasks/{task_id}/start", response_model=ScheduledTaskResponse)
async def start_task(
    task_id: str,
    tenant_id: str = Depends(get_tenant_id),
    scheduler: ReconcileScheduler = Depends(get_scheduler),
):
    _tenant_task(scheduler, tenant_id, task_id)
    return task_response(scheduler.start_task(task_id))


@router.post("/tasks/{task_id}/stop", response_model=ScheduledTaskResponse)
async def stop_task(
    task_id: str,
    tenant_id: str = Depends(get_tenant_id),
    scheduler: ReconcileScheduler = Depends(get_scheduler),
):
    _tenant_task(scheduler, tenant_id, task_id)
    return task_response(scheduler.stop_task(task_id))


@router.post("/tasks/{task_id}/run", response_model=ScheduledTaskResponse)
async def run_task_now(
    task_id: str,
    tenant_id: str = Depends(get_tenant_id),
    scheduler: ReconcileScheduler = Depends(get_scheduler),
):
    _tenant_task(scheduler, tenant_id, task_id)
    try:
        await scheduler.run_task_now(task_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return task_response(scheduler.get_task(task_id))


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: str,
    tenant_id: str = Depends(get_tenant_id),
    scheduler: ReconcileScheduler = Depends(get_scheduler),
):
    _tenant_task(scheduler, tenant_id, task_id)
    scheduler.delete_task(task_id)
