# Destination Integrations Package
from .base import (
    AdapterResult,
    ERPAdapter,
    MarketplaceAdapter,
    NotificationAdapter,
    ShipmentInfo,
    WorkflowAdapter,
)
from .email import SendGridNotifier
from .n8n import N8NClient
from .odoo import OdooClient
from .trendyol import TrendyolClient

__all__ = [
    "AdapterResult",
    "ERPAdapter",
    "MarketplaceAdapter",
    "NotificationAdapter",
    "ShipmentInfo",
    "WorkflowAdapter",
    "SendGridNotifier",
    "N8NClient",
    "OdooClient",
    "TrendyolClient",
]
