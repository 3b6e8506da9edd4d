"""
ERP Provisioning - creates partner, sale order, invoice and delivery order for an order

The flow stops at the first failing step. Artifacts created before it are
returned on the ProvisioningStepError so the caller can persist them and
``resume`` later; nothing is rolled back on the ERP side.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from orderbridge.core.exceptions import (
    AlreadyProvisionedError,
    ExternalServiceError,
    NotFoundError,
    ProvisioningStepError,
    ValidationError,
)
from orderbridge.domain.order import Order
from orderbridge.integrations.base import ERPAdapter
from .marketplace_sync import call_adapter

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningOptions:
    create_customer: bool = True
    create_invoice: bool = True
    create_delivery_order: bool = True

    # Stock master data for the delivery order
    picking_type_id: Optional[int] = None
    stock_location_id: Optional[int] = None
    customer_location_id: Optional[int] = None


@dataclass
class ProvisioningResult:
    partner_id: Optional[str] = None
    sale_order_id: Optional[str] = None
    invoice_id: Optional[str] = None
    delivery_order_id: Optional[str] = None


class ERPProvisioningFlow:
    """Provision one order into the ERP through an ERPAdapter"""

    def __init__(self, erp: ERPAdapter):
        self.erp = erp

    async def provision(self, order: Order, options: Optional[ProvisioningOptions] = None) -> ProvisioningResult:
        """
        Raises AlreadyProvisionedError (before any ERP call), NotFoundError
        (partner missing and create_customer off) or ProvisioningStepError.
        """
        options = options or ProvisioningOptions()
        if order.erp_sale_order_id:
            raise AlreadyProvisionedError(
                f"Order {order.order_number} is already provisioned (sale order {order.erp_sale_order_id})"
            )

        logger.info(f"Provisioning order {order.order_number} to ERP")
        result = ProvisioningResult()

        result.partner_id = await self._step("partner", result, self._resolve_partner(order, options))
        result.sale_order_id = await self._step("sale_order", result, self._create_sale_order(order, result.partner_id))
        await self._optional_steps(order, options, result)

        logger.info(f"Order {order.order_number} provisioned: sale order {result.sale_order_id}")
        return result

    async def resume(self, order: Order, options: Optional[ProvisioningOptions] = None) -> ProvisioningResult:
        """Complete the invoice / delivery steps missing from a partially provisioned order"""
        options = options or ProvisioningOptions()
        if not order.erp_sale_order_id:
            raise ValidationError(f"Order {order.order_number} has no ERP sale order to resume")

        result = ProvisioningResult(
            partner_id=order.erp_partner_id,
            sale_order_id=order.erp_sale_order_id,
            invoice_id=order.erp_invoice_id,
            delivery_order_id=order.erp_delivery_order_id,
        )
        logger.info(f"Resuming ERP provisioning of {order.order_number} (sale order {result.sale_order_id})")

        if not result.partner_id and (options.create_invoice or options.create_delivery_order):
            result.partner_id = await self._step("partner", result, self._resolve_partner(order, options))
        await self._optional_steps(order, options, result)
        return result

    async def _optional_steps(self, order: Order, options: ProvisioningOptions, result: ProvisioningResult):
        if options.create_invoice and not result.invoice_id:
            result.invoice_id = await self._step("invoice", result, self._create_invoice(order, result))
        if options.create_delivery_order and not result.delivery_order_id:
            result.delivery_order_id = await self._step(
                "delivery_order", result, self._create_delivery_order(order, options, result)
            )

    @staticmethod
    async def _step(step: str, result: ProvisioningResult, coro) -> str:
        try:
            return await coro
        except ExternalServiceError as e:
            logger.error(f"ERP provisioning step {step} failed: {e.reason}")
            raise ProvisioningStepError(step, e.reason, partial=result)

    # ========== Steps ==========

    async def _resolve_partner(self, order: Order, options: ProvisioningOptions) -> str:
        email = order.customer.email
        if email:
            found = await call_adapter("erp", self.erp.find_partner_by_email(email))
            if found.data:
                logger.info(f"Using existing ERP partner {found.data} for {email}")
                return str(found.data)

        if not options.create_customer:
            raise NotFoundError("Customer not found in ERP and create_customer is disabled")

        address = order.customer.address
        created = await call_adapter("erp", self.erp.create_partner({
            "name": order.customer.name,
            "email": email,
            "phone": order.customer.phone,
            "street": address.street,
            "city": address.city,
            "zip": address.postal_code,
            "is_company": False,
            "customer_rank": 1,
        }))
        return str(created.data)

    @staticmethod
    def order_lines(order: Order) -> List[Dict[str, Any]]:
        return [
            {
                "name": f"[{item.sku}] {item.name}",
                "product_uom_qty": item.quantity,
                "price_unit": float(item.unit_price),
            }
            for item in order.items
        ]

    async def _create_sale_order(self, order: Order, partner_id: str) -> str:
        created = await call_adapter("erp", self.erp.create_sale_order({
            "partner_id": partner_id,
            "date_order": order.order_date.strftime("%Y-%m-%d"),
            "order_line": self.order_lines(order),
            "amount_untaxed": float(order.subtotal),
            "amount_tax": float(order.tax),
            "amount_total": float(order.total),
            "client_order_ref": order.order_number,
            "origin": f"Marketplace: {order.external_order_id or 'Manual'}",
            "state": "draft",
        }))
        return str(created.data)

    async def _create_invoice(self, order: Order, result: ProvisioningResult) -> str:
        created = await call_adapter("erp", self.erp.create_invoice({
            "move_type": "out_invoice",
            "partner_id": result.partner_id,
            "invoice_origin": result.sale_order_id,
            "invoice_line_ids": [
                {"name": line["name"], "quantity": line["product_uom_qty"], "price_unit": line["price_unit"]}
                for line in self.order_lines(order)
            ],
        }))
        return str(created.data)

    async def _create_delivery_order(self, order: Order, options: ProvisioningOptions, result: ProvisioningResult) -> str:
        data = {
            "partner_id": result.partner_id,
            "origin": result.sale_order_id,
        }
        if options.picking_type_id is not None:
            data["picking_type_id"] = options.picking_type_id
        if options.stock_location_id is not None:
            data["location_id"] = options.stock_location_id
        if options.customer_location_id is not None:
            data["location_dest_id"] = options.customer_location_id

        created = await call_adapter("erp", self.erp.create_stock_picking(data))
        return str(created.data)
