"""
Odoo ERP Client - JSON-RPC over httpx
"""
from typing import Any, Dict, List, Optional
import itertools
import logging

import httpx

from .base import AdapterResult, ERPAdapter, HTTPAdapterMixin

logger = logging.getLogger(__name__)

# Record references Odoo only accepts as integer ids
MANY2ONE_FIELDS = ("partner_id", "picking_type_id", "location_id", "location_dest_id")


class OdooClient(HTTPAdapterMixin, ERPAdapter):
    """
    Minimal Odoo client for partner, sale order, invoice and picking records
    """
    PROVIDER_NAME = "odoo"

    def __init__(
        self,
        url: str,
        database: str,
        username: str,
        password: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.database = database
        self.username = username
        self.password = password
        self._transport = transport
        self._uid: Optional[int] = None
        self._ids = itertools.count(1)

    def _client(self) -> httpx.AsyncClient:
        return self._make_client(base_url=self.url, headers={"Content-Type": "application/json"})

    # ========== JSON-RPC ==========

    async def _call(self, service: str, method: str, args: List[Any]) -> AdapterResult:
        result = await self._request(
            "POST",
            "/jsonrpc",
            json={
                "jsonrpc": "2.0",
                "method": "call",
                "params": {"service": service, "method": method, "args": args},
                "id": next(self._ids),
            },
        )
        if not result.success:
            return result

        body = result.data if isinstance(result.data, dict) else {}
        if body.get("error"):
            error = body["error"]
            message = error.get("data", {}).get("message") or error.get("message") or "Odoo error"
            logger.error(f"[odoo] {service}.{method} error: {message}")
            return AdapterResult.fail(message)
        return AdapterResult.ok(body.get("result"))

    async def _login(self) -> AdapterResult:
        if self._uid:
            return AdapterResult.ok(self._uid)

        result = await self._call("common", "login", [self.database, self.username, self.password])
        if not result.success:
            return result
        if not result.data:
            return AdapterResult.fail("Odoo authentication failed")

        self._uid = result.data
        return result

    async def _execute(self, model: str, method: str, args: List[Any], kwargs: Optional[Dict[str, Any]] = None) -> AdapterResult:
        login = await self._login()
        if not login.success:
            return login

        return await self._call(
            "object",
            "execute_kw",
            [self.database, self._uid, self.password, model, method, args, kwargs or {}],
        )

    @staticmethod
    def _one2many(lines: List[Dict[str, Any]]) -> List[Any]:
        return [(0, 0, line) for line in lines]

    @staticmethod
    def _many2one(values: Dict[str, Any]) -> Dict[str, Any]:
        """Cast record ids kept as strings on our side back to int"""
        values = dict(values)
        for key in MANY2ONE_FIELDS:
            if values.get(key) is not None:
                values[key] = int(values[key])
        return values

    # ========== ERPAdapter ==========

    async def find_partner_by_email(self, email: str) -> AdapterResult:
        result = await self._execute("res.partner", "search", [[("email", "=", email)]], {"limit": 1})
        if not result.success:
            return result
        ids = result.data or []
        return AdapterResult.ok(str(ids[0]) if ids else None)

    async def create_partner(self, data: Dict[str, Any]) -> AdapterResult:
        result = await self._execute("res.partner", "create", [data])
        return AdapterResult.ok(str(result.data)) if result.success else result

    async def create_sale_order(self, data: Dict[str, Any]) -> AdapterResult:
        values = self._many2one(data)
        values["order_line"] = self._one2many(values.get("order_line", []))
        result = await self._execute("sale.order", "create", [values])
        return AdapterResult.ok(str(result.data)) if result.success else result

    async def create_invoice(self, data: Dict[str, Any]) -> AdapterResult:
        values = self._many2one(data)
        values["invoice_line_ids"] = self._one2many(values.get("invoice_line_ids", []))
        result = await self._execute("account.move", "create", [values])
        return AdapterResult.ok(str(result.data)) if result.success else result

    async def create_stock_picking(self, data: Dict[str, Any]) -> AdapterResult:
        result = await self._execute("stock.picking", "create", [self._many2one(data)])
        return AdapterResult.ok(str(result.data)) if result.success else result

    async def update_sale_order(self, sale_order_id: str, values: Dict[str, Any]) -> AdapterResult:
        return await self._execute("sale.order", "write", [[int(sale_order_id)], self._many2one(values)])
