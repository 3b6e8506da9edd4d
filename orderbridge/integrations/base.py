"""
Destination adapter contracts - marketplace, ERP, workflow and notification

Adapters never raise past this boundary: every call returns an AdapterResult.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING
import logging

import httpx

from orderbridge.core.config import settings

if TYPE_CHECKING:
    from orderbridge.domain.order import Order, OrderStatus

logger = logging.getLogger(__name__)


@dataclass
class AdapterResult:
    """Outcome of one adapter call"""
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "AdapterResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "AdapterResult":
        return cls(success=False, error=error or "Unknown error")


@dataclass
class ShipmentInfo:
    tracking_number: str
    carrier: str
    tracking_url: Optional[str] = None


@dataclass
class RemoteOrderItem:
    sku: str
    product_name: str
    quantity: int
    unit_price: float
    total_price: Optional[float] = None
    product_id: Optional[str] = None


@dataclass
class RemoteOrder:
    """
    Marketplace order normalized for import
    """
    external_order_id: str
    order_number: str
    status: str  # Raw marketplace status
    payment_status: str = ""

    customer_name: str = ""
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_street: str = ""
    shipping_city: str = ""
    shipping_state: str = ""
    shipping_postal_code: str = ""
    shipping_country: str = ""

    items: List[RemoteOrderItem] = field(default_factory=list)
    currency: str = "TRY"
    subtotal: float = 0.0
    tax: float = 0.0
    shipping_fee: float = 0.0
    total_amount: float = 0.0

    order_date: Optional[datetime] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict)


class MarketplaceAdapter(ABC):
    PROVIDER_NAME: str = "marketplace"

    @abstractmethod
    async def test_connection(self) -> AdapterResult:
        pass

    @abstractmethod
    async def approve_order(self, external_order_id: str) -> AdapterResult:
        pass

    @abstractmethod
    async def reject_order(self, external_order_id: str, reason: str) -> AdapterResult:
        pass

    @abstractmethod
    async def create_shipment(self, external_order_id: str, shipment: ShipmentInfo) -> AdapterResult:
        pass

    @abstractmethod
    async def get_order_status(self, external_order_id: str) -> AdapterResult:
        """data: the marketplace's raw status string"""
        pass

    @abstractmethod
    async def get_orders(
        self,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        status: Optional[str] = None,
        page: int = 0,
        page_size: int = 50,
    ) -> AdapterResult:
        """
        One page of marketplace orders.

        data: {"orders": List[RemoteOrder], "errors": List[str], "has_more": bool}
        where errors name raw orders that could not be normalized
        """
        pass


class ERPAdapter(ABC):
    PROVIDER_NAME: str = "erp"

    @abstractmethod
    async def find_partner_by_email(self, email: str) -> AdapterResult:
        """data: partner id, or None when no partner has this e-mail"""
        pass

    @abstractmethod
    async def create_partner(self, data: Dict[str, Any]) -> AdapterResult:
        pass

    @abstractmethod
    async def create_sale_order(self, data: Dict[str, Any]) -> AdapterResult:
        pass

    @abstractmethod
    async def create_invoice(self, data: Dict[str, Any]) -> AdapterResult:
        pass

    @abstractmethod
    async def create_stock_picking(self, data: Dict[str, Any]) -> AdapterResult:
        pass

    @abstractmethod
    async def update_sale_order(self, sale_order_id: str, values: Dict[str, Any]) -> AdapterResult:
        pass


class WorkflowAdapter(ABC):
    PROVIDER_NAME: str = "workflow"

    @abstractmethod
    async def test_connection(self) -> AdapterResult:
        pass

    @abstractmethod
    async def trigger_workflow(self, workflow_id: str, payload: Dict[str, Any]) -> AdapterResult:
        pass


class NotificationAdapter(ABC):
    PROVIDER_NAME: str = "notification"

    @abstractmethod
    async def test_connection(self) -> AdapterResult:
        pass

    @abstractmethod
    async def send_order_status_update_email(self, order: "Order", new_status: "OrderStatus") -> AdapterResult:
        pass


class HTTPAdapterMixin:
    """
    Shared httpx plumbing: bounded transport retries, per-request timeout,
    and conversion of transport / HTTP errors into AdapterResult failures.
    """
    PROVIDER_NAME: str = "base"

    def _make_client(self, base_url: str = "", headers: Optional[Dict[str, str]] = None, auth=None) -> httpx.AsyncClient:
        transport = getattr(self, "_transport", None) or httpx.AsyncHTTPTransport(retries=settings.ADAPTER_HTTP_RETRIES)
        return httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            auth=auth,
            timeout=settings.ADAPTER_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def _request(self, method: str, url: str, **kwargs) -> AdapterResult:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
            self._log_api_call(method, url, response.status_code)
            response.raise_for_status()
            if not response.content:
                return AdapterResult.ok()
            try:
                return AdapterResult.ok(response.json())
            except ValueError:
                return AdapterResult.ok(response.text)
        except httpx.HTTPStatusError as e:
            logger.error(f"[{self.PROVIDER_NAME}] {method} {url} -> {e.response.status_code}: {e.response.text[:200]}")
            return AdapterResult.fail(f"HTTP {e.response.status_code}: {e.response.text[:200]}")
        except httpx.HTTPError as e:
            logger.error(f"[{self.PROVIDER_NAME}] {method} {url} failed: {e}")
            return AdapterResult.fail(str(e) or e.__class__.__name__)

    def _client(self) -> httpx.AsyncClient:
        raise NotImplementedError

    def _log_api_call(self, method: str, endpoint: str, status_code: int):
        """Log API call for debugging"""
        logger.info(f"[{self.PROVIDER_NAME}] {method} {endpoint} -> {status_code}")
