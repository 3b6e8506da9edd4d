"""
Provider registry - builds destination adapters from configuration

A provider is either registered here or rejected with UnsupportedProviderError.
"""
from typing import Any, Callable, Dict
import logging

from orderbridge.core.exceptions import UnsupportedProviderError
from orderbridge.models.integration import ChannelConnection
from orderbridge.schemas.integration import (
    EmailConfig,
    ERPCredentials,
    MarketplaceCredentials,
    WorkflowConfig,
)
from .base import ERPAdapter, MarketplaceAdapter, NotificationAdapter, WorkflowAdapter
from .email import SendGridNotifier
from .n8n import N8NClient
from .odoo import OdooClient
from .trendyol import TrendyolClient

logger = logging.getLogger(__name__)

PROVIDERS: Dict[str, Dict[str, Callable[[Any], Any]]] = {
    "marketplace": {
        "trendyol": lambda c: TrendyolClient(
            api_key=c.api_key,
            api_secret=c.api_secret,
            seller_id=c.seller_id,
            base_url=c.base_url,
        ),
    },
    "erp": {
        "odoo": lambda c: OdooClient(url=c.url, database=c.database, username=c.username, password=c.password),
    },
    "workflow": {
        "n8n": lambda c: N8NClient(url=c.url, api_key=c.api_key),
    },
    "notification": {
        "sendgrid": lambda c: SendGridNotifier(api_key=c.api_key or "", from_email=c.from_email, from_name=c.from_name),
    },
}


def register_provider(kind: str, provider: str, factory: Callable[[Any], Any]) -> None:
    """Register (or replace) the adapter factory for a provider"""
    PROVIDERS.setdefault(kind, {})[provider] = factory
    logger.info(f"Registered {kind} provider: {provider}")


def is_supported(kind: str, provider: str) -> bool:
    return provider in PROVIDERS.get(kind, {})


def _build(kind: str, provider: str, config: Any):
    factory = PROVIDERS.get(kind, {}).get(provider)
    if factory is None:
        raise UnsupportedProviderError(kind, provider)
    return factory(config)


def build_marketplace_adapter(config: MarketplaceCredentials) -> MarketplaceAdapter:
    return _build("marketplace", config.provider, config)


def build_marketplace_adapter_for_connection(connection: ChannelConnection) -> MarketplaceAdapter:
    return build_marketplace_adapter(MarketplaceCredentials(
        provider=connection.provider,
        api_key=connection.api_key or "",
        api_secret=connection.api_secret or "",
        seller_id=connection.seller_id,
        base_url=connection.base_url,
    ))


def build_erp_adapter(config: ERPCredentials) -> ERPAdapter:
    return _build("erp", config.provider, config)


def build_workflow_adapter(config: WorkflowConfig) -> WorkflowAdapter:
    return _build("workflow", config.provider, config)


def build_notification_adapter(config: EmailConfig) -> NotificationAdapter:
    return _build("notification", config.provider, config)
