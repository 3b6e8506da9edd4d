"""
HTTP adapters and the provider registry
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from orderbridge.core.exceptions import UnsupportedProviderError
from orderbridge.domain.order import CustomerInfo, OrderStatus
from orderbridge.integrations.base import ShipmentInfo
from orderbridge.integrations.email import SendGridNotifier
from orderbridge.integrations.n8n import N8NClient
from orderbridge.integrations.odoo import OdooClient
from orderbridge.integrations.registry import (
    build_erp_adapter,
    PROVIDERS,
    build_marketplace_adapter,
    is_supported,
    register_provider,
)
from orderbridge.integrations.trendyol import TrendyolClient
from orderbridge.schemas.integration import ERPCredentials, MarketplaceCredentials
from orderbridge.services.provisioning_service import ERPProvisioningFlow, ProvisioningOptions


def recording_transport(handler):
    requests = []

    def _handle(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.MockTransport(_handle), requests


class TestTrendyol:
    @pytest.mark.asyncio
    async def test_get_order_status(self):
        transport, requests = recording_transport(
            lambda request: httpx.Response(200, json={"id": "TY-1", "status": "Shipped"})
        )
        client = TrendyolClient("key", "secret", "777", transport=transport)

        result = await client.get_order_status("TY-1")

        assert result.success
        assert result.data == "Shipped"
        assert requests[0].url.path == "/sapigw/suppliers/777/orders/TY-1"
        assert requests[0].headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_shipment_payload(self):
        transport, requests = recording_transport(lambda request: httpx.Response(200))
        client = TrendyolClient("key", "secret", "777", transport=transport)

        result = await client.create_shipment("TY-1", ShipmentInfo("TRK-1", "Yurtici", "https://t/TRK-1"))

        assert result.success
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/sapigw/suppliers/777/orders/TY-1/shipment"
        assert json.loads(requests[0].content) == {
            "trackingNumber": "TRK-1", "carrier": "Yurtici", "trackingUrl": "https://t/TRK-1",
        }

    @pytest.mark.asyncio
    async def test_http_error_becomes_failed_result(self):
        transport, _ = recording_transport(lambda request: httpx.Response(500, text="maintenance"))
        client = TrendyolClient("key", "secret", "777", transport=transport)

        result = await client.approve_order("TY-1")

        assert not result.success
        assert result.error == "HTTP 500: maintenance"

    @pytest.mark.asyncio
    async def test_connection_failure_message(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client = TrendyolClient("key", "secret", "777", transport=httpx.MockTransport(refuse))
        result = await client.test_connection()

        assert not result.success
        assert result.error.startswith("Trendyol connection failed")

    @pytest.mark.asyncio
    async def test_get_orders_normalizes_page(self):
        page = {
            "page": 0,
            "totalPages": 2,
            "content": [
                {
                    "id": 555,
                    "orderNumber": "TY-555",
                    "orderDate": 1767225600000,
                    "status": "Approved",
                    "paymentStatus": "Paid",
                    "customerFirstName": "Elif",
                    "customerLastName": "Sahin",
                    "customerEmail": "elif@example.com",
                    "shippingAddress": {"address1": "Bagdat Cd. 10", "city": "Istanbul", "country": "TR"},
                    "items": [{"productId": "P-1", "productName": "Teapot", "quantity": 2, "price": 40}],
                    "subtotal": 80,
                    "shippingCost": 10,
                    "totalAmount": 90,
                    "currency": "TRY",
                },
                {"id": 556},
            ],
        }
        transport, requests = recording_transport(lambda request: httpx.Response(200, json=page))
        client = TrendyolClient("key", "secret", "777", transport=transport)

        result = await client.get_orders(
            time_from=datetime(2026, 1, 1, tzinfo=timezone.utc), page=0, page_size=20
        )

        assert result.success
        assert result.data["has_more"] is True
        assert len(result.data["errors"]) == 1
        [order] = result.data["orders"]
        assert (order.external_order_id, order.order_number, order.status) == ("555", "TY-555", "Approved")
        assert order.customer_name == "Elif Sahin"
        assert order.items[0].sku == "P-1"
        assert order.order_date == datetime(2026, 1, 1, tzinfo=timezone.utc)

        params = requests[0].url.params
        assert requests[0].url.path == "/sapigw/suppliers/777/orders"
        assert params["startDate"] == "1767225600000"
        assert params["size"] == "20"
        assert "endDate" not in params

    @pytest.mark.asyncio
    async def test_missing_status(self):
        transport, _ = recording_transport(lambda request: httpx.Response(200, json={"id": "TY-1"}))
        result = await TrendyolClient("key", "secret", "777", transport=transport).get_order_status("TY-1")
        assert not result.success


class TestOdoo:
    @pytest.mark.asyncio
    async def test_login_then_search_partner(self):
        def handler(request):
            body = json.loads(request.content)
            params = body["params"]
            if params["service"] == "common":
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": 7})
            model, method = params["args"][3], params["args"][4]
            assert (model, method) == ("res.partner", "search")
            assert params["args"][1] == 7
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": [11]})

        transport, requests = recording_transport(handler)
        client = OdooClient("https://erp.example.com/", "db", "admin", "pw", transport=transport)

        first = await client.find_partner_by_email("a@example.com")
        second = await client.find_partner_by_email("b@example.com")

        assert first.data == "11" and second.data == "11"
        # Login happens once
        assert len(requests) == 3

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        def handler(request):
            body = json.loads(request.content)
            if body["params"]["service"] == "common":
                return httpx.Response(200, json={"result": 7})
            return httpx.Response(200, json={"error": {"message": "Odoo Server Error", "data": {"message": "Access denied"}}})

        transport, _ = recording_transport(handler)
        result = await OdooClient("https://erp", "db", "u", "p", transport=transport).create_partner({"name": "x"})

        assert not result.success
        assert result.error == "Access denied"

    @pytest.mark.asyncio
    async def test_provisioning_sends_integer_record_ids(self, make_order):
        created = {}
        new_ids = {"sale.order": 100, "account.move": 200, "stock.picking": 300}

        def handler(request):
            body = json.loads(request.content)
            params = body["params"]
            if params["service"] == "common":
                return httpx.Response(200, json={"result": 7})
            model, method = params["args"][3], params["args"][4]
            if method == "search":
                return httpx.Response(200, json={"result": [42]})
            created[model] = params["args"][5][0]
            return httpx.Response(200, json={"result": new_ids[model]})

        transport, _ = recording_transport(handler)
        erp = OdooClient("https://erp", "db", "u", "p", transport=transport)

        result = await ERPProvisioningFlow(erp).provision(
            make_order(), ProvisioningOptions(picking_type_id=2, stock_location_id=8, customer_location_id=5)
        )

        assert (result.partner_id, result.sale_order_id) == ("42", "100")
        assert created["sale.order"]["partner_id"] == 42
        assert created["account.move"]["partner_id"] == 42
        assert created["account.move"]["invoice_origin"] == "100"
        assert created["stock.picking"]["partner_id"] == 42
        for values in created.values():
            assert isinstance(values["partner_id"], int)

    @pytest.mark.asyncio
    async def test_authentication_failure(self):
        transport, _ = recording_transport(lambda request: httpx.Response(200, json={"result": False}))
        result = await OdooClient("https://erp", "db", "u", "p", transport=transport).create_sale_order({})
        assert result.error == "Odoo authentication failed"


class TestWorkflowAndEmail:
    @pytest.mark.asyncio
    async def test_n8n_webhook(self):
        transport, requests = recording_transport(lambda request: httpx.Response(200, json={"ok": True}))
        client = N8NClient("https://n8n.example.com/", "api-key", transport=transport)

        result = await client.trigger_workflow("wf-1", {"order_number": "ORD-1"})

        assert result.success
        assert requests[0].url == "https://n8n.example.com/webhook/wf-1"
        assert requests[0].headers["X-N8N-API-KEY"] == "api-key"

    @pytest.mark.asyncio
    async def test_email_requires_customer_address(self, make_order):
        transport, requests = recording_transport(lambda request: httpx.Response(202))
        notifier = SendGridNotifier("sg-key", "shop@example.com", transport=transport)
        order = make_order()

        sent = await notifier.send_order_status_update_email(order, OrderStatus.SHIPPED)
        assert sent.success
        payload = json.loads(requests[0].content)
        assert payload["subject"] == f"Your order {order.order_number} has shipped"
        assert payload["personalizations"][0]["to"][0]["email"] == "ayse@example.com"

        no_email = order.evolve(customer=CustomerInfo(name="Anon"))
        result = await notifier.send_order_status_update_email(no_email, OrderStatus.SHIPPED)
        assert not result.success
        assert len(requests) == 1


class TestRegistry:
    def test_unknown_provider(self):
        assert not is_supported("marketplace", "hepsiburada")
        with pytest.raises(UnsupportedProviderError) as exc:
            build_marketplace_adapter(MarketplaceCredentials(
                provider="hepsiburada", api_key="k", api_secret="s", seller_id="1",
            ))
        assert exc.value.kind == "marketplace"
        assert str(exc.value) == "Unsupported marketplace provider: hepsiburada"

    def test_builds_registered_adapters(self):
        assert isinstance(
            build_marketplace_adapter(MarketplaceCredentials(api_key="k", api_secret="s", seller_id="1")),
            TrendyolClient,
        )
        assert isinstance(
            build_erp_adapter(ERPCredentials(url="https://erp", database="db", username="u", password="p")),
            OdooClient,
        )

    def test_register_provider(self):
        register_provider("erp", "test-erp", lambda c: ("built", c.url))
        try:
            assert is_supported("erp", "test-erp")
            built = build_erp_adapter(ERPCredentials(
                provider="test-erp", url="https://x", database="d", username="u", password="p",
            ))
            assert built == ("built", "https://x")
        finally:
            PROVIDERS["erp"].pop("test-erp")
