"""
Trendyol Marketplace Client
API Documentation: https://developers.trendyol.com
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

import httpx

from .base import AdapterResult, HTTPAdapterMixin, MarketplaceAdapter, RemoteOrder, RemoteOrderItem, ShipmentInfo

logger = logging.getLogger(__name__)


class TrendyolClient(HTTPAdapterMixin, MarketplaceAdapter):
    """
    Trendyol supplier API client (order status subset)
    """
    PROVIDER_NAME = "trendyol"

    BASE_URL = "https://api.trendyol.com"

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        seller_id: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.seller_id = seller_id
        self.base_url = base_url or self.BASE_URL
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return self._make_client(
            base_url=self.base_url,
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"{self.seller_id} - SelfIntegration",
            },
            auth=(self.api_key, self.api_secret),
        )

    def _orders_path(self, suffix: str = "") -> str:
        return f"/sapigw/suppliers/{self.seller_id}/orders{suffix}"

    # ========== Connection ==========

    async def test_connection(self) -> AdapterResult:
        result = await self._request(
            "GET",
            f"/sapigw/suppliers/{self.seller_id}/products",
            params={"page": 0, "size": 1},
        )
        if not result.success:
            return AdapterResult.fail(f"Trendyol connection failed: {result.error}")
        return AdapterResult.ok()

    # ========== Order actions ==========

    async def approve_order(self, external_order_id: str) -> AdapterResult:
        return await self._request("POST", self._orders_path(f"/{external_order_id}/approve"))

    async def reject_order(self, external_order_id: str, reason: str) -> AdapterResult:
        return await self._request(
            "POST",
            self._orders_path(f"/{external_order_id}/reject"),
            json={"reason": reason},
        )

    async def create_shipment(self, external_order_id: str, shipment: ShipmentInfo) -> AdapterResult:
        payload = {
            "trackingNumber": shipment.tracking_number,
            "carrier": shipment.carrier,
        }
        if shipment.tracking_url:
            payload["trackingUrl"] = shipment.tracking_url

        return await self._request(
            "POST",
            self._orders_path(f"/{external_order_id}/shipment"),
            json=payload,
        )

    async def get_order_status(self, external_order_id: str) -> AdapterResult:
        result = await self._request("GET", self._orders_path(f"/{external_order_id}"))
        if not result.success:
            return result

        data = result.data if isinstance(result.data, dict) else {}
        status = data.get("status") or data.get("shipmentPackageStatus")
        if not status:
            return AdapterResult.fail(f"No status in Trendyol response for order {external_order_id}")
        return AdapterResult.ok(status)

    # ========== Order import ==========

    async def get_orders(
        self,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        status: Optional[str] = None,
        page: int = 0,
        page_size: int = 50,
    ) -> AdapterResult:
        """
        Get one page of orders
        API: GET /sapigw/suppliers/{sellerId}/orders (dates as epoch milliseconds)
        """
        params: Dict[str, Any] = {"page": page, "size": page_size}
        if time_from:
            params["startDate"] = self._to_millis(time_from)
        if time_to:
            params["endDate"] = self._to_millis(time_to)
        if status:
            params["status"] = status

        result = await self._request("GET", self._orders_path(), params=params)
        if not result.success:
            return result

        data = result.data if isinstance(result.data, dict) else {}
        orders, errors = [], []
        for raw in data.get("content") or []:
            try:
                orders.append(self.normalize_order(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[trendyol] Malformed order {raw.get('orderNumber')}: {e}")
                errors.append(f"Malformed order {raw.get('orderNumber')}: {e}")

        total_pages = data.get("totalPages") or 0
        return AdapterResult.ok({"orders": orders, "errors": errors, "has_more": page + 1 < total_pages})

    def normalize_order(self, raw: Dict[str, Any]) -> RemoteOrder:
        """Convert a Trendyol order to RemoteOrder"""
        address = raw.get("shippingAddress") or {}
        first = raw.get("customerFirstName") or address.get("firstName") or ""
        last = raw.get("customerLastName") or address.get("lastName") or ""

        items = []
        for line in raw.get("items") or raw.get("lines") or []:
            product_id = str(line.get("productId") or line.get("productCode") or "")
            items.append(RemoteOrderItem(
                sku=line.get("merchantSku") or line.get("sku") or product_id,
                product_name=line.get("productName", ""),
                quantity=int(line.get("quantity", 1)),
                unit_price=float(line.get("price", 0)),
                total_price=line.get("totalPrice"),
                product_id=product_id or None,
            ))

        order_number = str(raw["orderNumber"])
        return RemoteOrder(
            external_order_id=str(raw.get("id") or order_number),
            order_number=order_number,
            status=raw.get("status") or raw.get("shipmentPackageStatus") or "Created",
            payment_status=raw.get("paymentStatus", ""),
            customer_name=f"{first} {last}".strip(),
            customer_email=raw.get("customerEmail"),
            customer_phone=raw.get("customerPhone") or address.get("phone"),
            shipping_street=address.get("address1") or address.get("fullAddress") or "",
            shipping_city=address.get("city", ""),
            shipping_state=address.get("state") or address.get("district") or "",
            shipping_postal_code=address.get("postalCode", ""),
            shipping_country=address.get("country") or address.get("countryCode") or "",
            items=items,
            currency=raw.get("currency") or raw.get("currencyCode") or "TRY",
            subtotal=float(raw.get("subtotal", raw.get("grossAmount", 0)) or 0),
            tax=float(raw.get("tax", 0) or 0),
            shipping_fee=float(raw.get("shippingCost", 0) or 0),
            total_amount=float(raw.get("totalAmount", raw.get("totalPrice", 0)) or 0),
            order_date=self._parse_date(raw.get("orderDate")),
            raw_payload=raw,
        )

    @staticmethod
    def _to_millis(value: datetime) -> int:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)

    @staticmethod
    def _parse_date(value) -> Optional[datetime]:
        if value is None:
            return None
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
