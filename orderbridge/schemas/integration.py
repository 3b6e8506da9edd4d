"""
Integration Schemas - destination credentials and dispatch flags
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime


class MarketplaceCredentials(BaseModel):
    provider: str = "trendyol"
    api_key: str
    api_secret: str
    seller_id: str
    base_url: Optional[str] = None


class ERPCredentials(BaseModel):
    provider: str = "odoo"
    url: str
    database: str
    username: str
    password: str

    # Master data ids for delivery orders, resolved outside this system
    picking_type_id: Optional[int] = None
    stock_location_id: Optional[int] = None
    customer_location_id: Optional[int] = None


class WorkflowConfig(BaseModel):
    provider: str = "n8n"
    url: str
    api_key: str
    workflow_id: Optional[str] = None


class EmailConfig(BaseModel):
    provider: str = "sendgrid"  # sendgrid, mailgun, ses, smtp
    api_key: Optional[str] = None
    domain: Optional[str] = None
    from_email: str
    from_name: str = ""


class DestinationFlags(BaseModel):
    update_marketplace: bool = False
    update_erp: bool = False
    trigger_workflow: bool = False
    send_notification: bool = False


class IntegrationConfigs(BaseModel):
    """Optional per-request destination configuration; absent means not wired"""
    marketplace: Optional[MarketplaceCredentials] = None
    erp: Optional[ERPCredentials] = None
    workflow: Optional[WorkflowConfig] = None
    email: Optional[EmailConfig] = None


# ========== Channel connections ==========

class ChannelConnectionCreate(BaseModel):
    provider: str = "trendyol"
    seller_id: str
    shop_name: Optional[str] = None
    api_key: str
    api_secret: str
    base_url: Optional[str] = None
    sync_interval_minutes: int = 60
    conflict_policy: str = "marketplace_wins"


class ChannelConnectionUpdate(BaseModel):
    shop_name: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    base_url: Optional[str] = None
    is_active: Optional[bool] = None
    sync_enabled: Optional[bool] = None
    sync_interval_minutes: Optional[int] = None
    conflict_policy: Optional[str] = None


class ChannelConnectionResponse(BaseModel):
    id: UUID
    tenant_id: str
    provider: str
    seller_id: str
    shop_name: Optional[str]
    is_active: bool
    sync_enabled: bool
    sync_interval_minutes: int
    conflict_policy: str
    last_sync_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True
