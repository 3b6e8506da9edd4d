"""
Sync Schemas - reconciliation and import requests, scheduled tasks and sync history
"""
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from uuid import UUID
from datetime import datetime

from .integration import IntegrationConfigs


class ReconcileRequest(BaseModel):
    connection_id: UUID
    policy: Optional[Literal["marketplace_wins", "internal_wins", "manual"]] = None
    sync_from_remote: bool = True
    sync_to_remote: bool = True
    trigger_workflow: bool = False
    send_notification: bool = False
    integrations: IntegrationConfigs = IntegrationConfigs()


class ConflictResponse(BaseModel):
    order_id: UUID
    internal_status: str
    remote_status: str
    mapped_status: str
    resolution: str
    note: str


class PassResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    skipped: int = 0
    duration_seconds: float


class ReconcileResponse(BaseModel):
    success: bool
    sync_log_id: Optional[UUID] = None
    from_remote_count: int
    to_remote_count: int
    conflicts: List[ConflictResponse] = []
    errors: List[str] = []
    from_remote: PassResponse
    to_remote: PassResponse


class ImportRequest(BaseModel):
    connection_id: UUID
    time_from: Optional[datetime] = None  # None: 24 hours before time_to
    time_to: Optional[datetime] = None  # None: now
    max_orders: Optional[int] = Field(None, gt=0)
    integrations: IntegrationConfigs = IntegrationConfigs()


class ImportErrorResponse(BaseModel):
    item_id: str
    error_message: str


class ImportResponse(BaseModel):
    success: bool
    sync_log_id: Optional[UUID] = None
    processed: int
    created: int
    updated: int
    skipped: int
    failed: int
    errors: List[ImportErrorResponse] = []
    duration_seconds: float


class ScheduledTaskCreate(BaseModel):
    connection_id: UUID
    frequency: Literal["hourly", "daily", "weekly"] = "hourly"
    interval_minutes: Optional[int] = Field(None, gt=0)
    policy: Optional[Literal["marketplace_wins", "internal_wins", "manual"]] = None
    sync_from_remote: bool = True
    sync_to_remote: bool = True
    trigger_workflow: bool = False
    send_notification: bool = False
    import_orders: bool = False
    start: bool = True


class ScheduledTaskResponse(BaseModel):
    id: str
    tenant_id: str
    connection_id: UUID
    frequency: str
    interval_minutes: int
    policy: str
    import_orders: bool = False
    is_active: bool
    created_at: datetime
    last_run_at: Optional[datetime]
    last_status: Optional[str]
    next_run_at: Optional[datetime]
    run_count: int


class SyncLogResponse(BaseModel):
    id: UUID
    started_at: datetime
    completed_at: Optional[datetime]
    status: str
    sync_type: str = "reconcile"
    connection_id: Optional[UUID]
    task_id: Optional[str]
    policy: Optional[str]
    stats: dict
    error_message: Optional[str]

    class Config:
        from_attributes = True
