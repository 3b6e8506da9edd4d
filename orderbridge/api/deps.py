"""
API dependencies - tenant header, wired destinations and error mapping
"""
from typing import Optional

from fastapi import Header, HTTPException, Request

from orderbridge.jobs.reconcile_scheduler import ReconcileScheduler
from orderbridge.services.sync_orchestrator import Destinations

# Error code of a failed result -> HTTP status
HTTP_STATUS_BY_ERROR = {
    "not_found": 404,
    "invalid_transition": 409,
    "already_provisioned": 409,
}


def get_tenant_id(x_tenant_id: str = Header(..., min_length=1)) -> str:
    return x_tenant_id


def get_destinations(request: Request) -> Optional[Destinations]:
    """Destinations wired at startup (None: per-request configuration only)"""
    return getattr(request.app.state, "destinations", None)


def get_scheduler(request: Request) -> ReconcileScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler is not available")
    return scheduler


def raise_for_result(result):
    """Raise HTTPException for a failed service result"""
    if not result.success:
        status_code = HTTP_STATUS_BY_ERROR.get(result.error_code, 400)
        raise HTTPException(status_code=status_code, detail=result.error)
