"""
Connection Service - Manage marketplace channel connections
"""
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy import and_
import logging

from orderbridge.integrations.base import AdapterResult
from orderbridge.integrations.registry import build_marketplace_adapter_for_connection
from orderbridge.models.integration import ChannelConnection

logger = logging.getLogger(__name__)


def get_connections(
    db: Session,
    tenant_id: str,
    provider: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> List[ChannelConnection]:
    """Get a tenant's connections with optional filters"""
    query = db.query(ChannelConnection).filter(ChannelConnection.tenant_id == tenant_id)

    if provider:
        query = query.filter(ChannelConnection.provider == provider)
    if is_active is not None:
        query = query.filter(ChannelConnection.is_active == is_active)

    return query.order_by(ChannelConnection.created_at.desc()).all()


def get_connection(db: Session, tenant_id: str, connection_id: UUID) -> Optional[ChannelConnection]:
    """Get connection by ID; other tenants' connections are not visible"""
    return db.query(ChannelConnection).filter(
        and_(
            ChannelConnection.id == connection_id,
            ChannelConnection.tenant_id == tenant_id,
        )
    ).first()


def get_connection_by_seller(
    db: Session,
    tenant_id: str,
    provider: str,
    seller_id: str,
) -> Optional[ChannelConnection]:
    return db.query(ChannelConnection).filter(
        and_(
            ChannelConnection.tenant_id == tenant_id,
            ChannelConnection.provider == provider,
            ChannelConnection.seller_id == seller_id,
        )
    ).first()


def create_connection(
    db: Session,
    tenant_id: str,
    provider: str,
    seller_id: str,
    api_key: str,
    api_secret: str,
    shop_name: Optional[str] = None,
    base_url: Optional[str] = None,
    sync_interval_minutes: int = 60,
    conflict_policy: str = "marketplace_wins",
) -> ChannelConnection:
    connection = ChannelConnection(
        tenant_id=tenant_id,
        provider=provider,
        seller_id=seller_id,
        shop_name=shop_name,
        api_key=api_key,
        api_secret=api_secret,
        base_url=base_url,
        sync_interval_minutes=sync_interval_minutes,
        conflict_policy=conflict_policy,
        is_active=True,
        sync_enabled=True,
    )

    db.add(connection)
    db.commit()
    db.refresh(connection)

    logger.info(f"Created connection: {tenant_id} {provider}/{seller_id}")
    return connection


def update_connection(
    db: Session,
    tenant_id: str,
    connection_id: UUID,
    **kwargs,
) -> Optional[ChannelConnection]:
    connection = get_connection(db, tenant_id, connection_id)
    if not connection:
        return None

    allowed_fields = [
        "shop_name", "api_key", "api_secret", "base_url", "is_active",
        "sync_enabled", "sync_interval_minutes", "conflict_policy",
    ]

    for field, value in kwargs.items():
        if field in allowed_fields and value is not None:
            setattr(connection, field, value)

    connection.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(connection)

    logger.info(f"Updated connection: {connection.provider}/{connection.seller_id}")
    return connection


async def check_connection(connection: ChannelConnection) -> AdapterResult:
    """Check the marketplace credentials of a connection"""
    adapter = build_marketplace_adapter_for_connection(connection)
    result = await adapter.test_connection()
    logger.info(f"Connection test {connection.provider}/{connection.seller_id}: {'ok' if result.success else result.error}")
    return result
