"""
Connections API - CRUD for marketplace channel connections
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from orderbridge.core.database import get_db
from orderbridge.core.exceptions import UnsupportedProviderError
from orderbridge.integrations.registry import is_supported
from orderbridge.schemas.integration import (
    ChannelConnectionCreate,
    ChannelConnectionResponse,
    ChannelConnectionUpdate,
)
from orderbridge.services import connection_service
from orderbridge.services.reconciliation_service import ConflictPolicy
from .deps import get_tenant_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])

POLICIES = [p.value for p in ConflictPolicy]


@router.get("", response_model=List[ChannelConnectionResponse])
async def list_connections(
    provider: Optional[str] = None,
    is_active: Optional[bool] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return connection_service.get_connections(db, tenant_id, provider, is_active)


@router.get("/{connection_id}", response_model=ChannelConnectionResponse)
async def get_connection(
    connection_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    connection = connection_service.get_connection(db, tenant_id, connection_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


@router.post("", response_model=ChannelConnectionResponse, status_code=status.HTTP_201_CREATED)
async def create_connection(
    data: ChannelConnectionCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    if not is_supported("marketplace", data.provider):
        raise HTTPException(status_code=400, detail=str(UnsupportedProviderError("marketplace", data.provider)))
    if data.conflict_policy not in POLICIES:
        raise HTTPException(status_code=400, detail=f"Invalid conflict policy. Must be: {', '.join(POLICIES)}")

    existing = connection_service.get_connection_by_seller(db, tenant_id, data.provider, data.seller_id)
    if existing:
        raise HTTPException(
            status_code=409,
            detail=f"Connection already exists for {data.provider}/{data.seller_id}",
        )

    return connection_service.create_connection(db=db, tenant_id=tenant_id, **data.model_dump())


@router.put("/{connection_id}", response_model=ChannelConnectionResponse)
async def update_connection(
    connection_id: UUID,
    data: ChannelConnectionUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    if data.conflict_policy is not None and data.conflict_policy not in POLICIES:
        raise HTTPException(status_code=400, detail=f"Invalid conflict policy. Must be: {', '.join(POLICIES)}")

    connection = connection_service.update_connection(
        db=db,
        tenant_id=tenant_id,
        connection_id=connection_id,
        **data.model_dump(exclude_unset=True),
    )
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


@router.post("/{connection_id}/test")
async def check_connection(
    connection_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    connection = connection_service.get_connection(db, tenant_id, connection_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")

    result = await connection_service.check_connection(connection)
    return {"success": result.success, "error": result.error}
