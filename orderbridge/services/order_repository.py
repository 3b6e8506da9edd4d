"""
Order Repository - maps immutable Order values to order rows
"""
from datetime import timezone
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orderbridge.core.exceptions import NotFoundError, PersistenceError
from orderbridge.domain.order import Address, CustomerInfo, Order, OrderItem
from orderbridge.models.order import OrderItemRecord, OrderRecord

logger = logging.getLogger(__name__)


class OrderRepository:
    """Read and write orders for one database session"""

    def __init__(self, db: Session):
        self.db = db

    # ========== Reads ==========

    def get(self, order_id: UUID, tenant_id: Optional[str] = None) -> Order:
        """Load an order; orders of other tenants are reported as not found"""
        record = self._get_record(order_id)
        if not record or (tenant_id is not None and record.tenant_id != tenant_id):
            raise NotFoundError(f"Order not found: {order_id}")
        return self.to_domain(record)

    def list(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[Order], int]:
        """Orders of a tenant, newest first, with total count"""
        query = self.db.query(OrderRecord).filter(OrderRecord.tenant_id == tenant_id)
        if status and status != "all":
            query = query.filter(OrderRecord.status == status)

        total = query.count()
        records = query.order_by(OrderRecord.created_at.desc())\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()
        return [self.to_domain(r) for r in records], total

    def list_linked_orders(self, tenant_id: str, connection_id: Optional[UUID] = None) -> List[Order]:
        """Orders with a marketplace link, optionally limited to one connection"""
        query = self.db.query(OrderRecord).filter(
            OrderRecord.tenant_id == tenant_id,
            OrderRecord.external_order_id.isnot(None),
        )
        if connection_id:
            query = query.filter(OrderRecord.marketplace_connection_id == connection_id)
        return [self.to_domain(r) for r in query.order_by(OrderRecord.created_at.asc()).all()]

    def find_by_external_id(
        self, tenant_id: str, external_order_id: str, connection_id: Optional[UUID] = None
    ) -> Optional[Order]:
        query = self.db.query(OrderRecord).filter(
            OrderRecord.tenant_id == tenant_id,
            OrderRecord.external_order_id == external_order_id,
        )
        if connection_id:
            query = query.filter(OrderRecord.marketplace_connection_id == connection_id)
        record = query.first()
        return self.to_domain(record) if record else None

    def list_needing_status_push(self, tenant_id: str, connection_id: Optional[UUID] = None) -> List[Order]:
        query = self.db.query(OrderRecord).filter(
            OrderRecord.tenant_id == tenant_id,
            OrderRecord.external_order_id.isnot(None),
            OrderRecord.needs_status_push == True,
        )
        if connection_id:
            query = query.filter(OrderRecord.marketplace_connection_id == connection_id)
        return [self.to_domain(r) for r in query.order_by(OrderRecord.updated_at.asc()).all()]

    def next_order_number(self, tenant_id: str, prefix: str) -> str:
        count = self.db.query(func.count(OrderRecord.id)).filter(
            OrderRecord.tenant_id == tenant_id,
            OrderRecord.order_number.like(f"{prefix}%"),
        ).scalar()
        return f"{prefix}-{count + 1:04d}"

    # ========== Writes ==========

    def add(self, order: Order, commit: bool = True) -> Order:
        record = OrderRecord(id=order.id, tenant_id=order.tenant_id)
        self._apply(record, order)
        for idx, item in enumerate(order.items):
            record.items.append(OrderItemRecord(
                line_no=idx + 1,
                product_id=item.product_id,
                sku=item.sku,
                product_name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            ))
        try:
            self.db.add(record)
            self._finish(commit)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Could not create order {order.order_number}: {e}")

        logger.info(f"Created order: {order.tenant_id}/{order.order_number}")
        return order

    def save(self, order: Order, commit: bool = True) -> Order:
        """Overwrite the mutable header fields of an existing order (items are fixed)"""
        record = self._get_record(order.id)
        if not record:
            raise NotFoundError(f"Order not found: {order.id}")

        self._apply(record, order)
        try:
            self._finish(commit)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Could not save order {order.order_number}: {e}")
        return order

    def commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Commit failed: {e}")

    def rollback(self):
        self.db.rollback()

    # ========== Mapping ==========

    def _get_record(self, order_id: UUID) -> Optional[OrderRecord]:
        try:
            return self.db.query(OrderRecord).filter(OrderRecord.id == order_id).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load order {order_id}: {e}")

    def _finish(self, commit: bool):
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    @staticmethod
    def _apply(record: OrderRecord, order: Order):
        address = order.customer.address
        record.order_number = order.order_number
        record.external_order_id = order.external_order_id
        record.marketplace_connection_id = order.marketplace_connection_id
        record.needs_status_push = order.needs_status_push
        record.customer_name = order.customer.name
        record.customer_email = order.customer.email
        record.customer_phone = order.customer.phone
        record.shipping_street = address.street
        record.shipping_city = address.city
        record.shipping_state = address.state
        record.shipping_postal_code = address.postal_code
        record.shipping_country = address.country
        record.status = order.status.value
        record.payment_status = order.payment_status.value
        record.tracking_number = order.tracking_number
        record.carrier = order.carrier
        record.currency_code = order.currency
        record.subtotal_amount = order.subtotal
        record.tax_amount = order.tax
        record.shipping_fee = order.shipping
        record.discount_amount = order.discount
        record.total_amount = order.total
        record.erp_partner_id = order.erp_partner_id
        record.erp_sale_order_id = order.erp_sale_order_id
        record.erp_invoice_id = order.erp_invoice_id
        record.erp_delivery_order_id = order.erp_delivery_order_id
        record.workflow_triggered = order.workflow_triggered
        record.order_datetime = order.order_date

    @staticmethod
    def to_domain(record: OrderRecord) -> Order:
        order_date = record.order_datetime or record.created_at
        if order_date is not None and order_date.tzinfo is None:
            order_date = order_date.replace(tzinfo=timezone.utc)

        return Order(
            id=record.id,
            tenant_id=record.tenant_id,
            order_number=record.order_number,
            customer=CustomerInfo(
                name=record.customer_name,
                email=record.customer_email,
                phone=record.customer_phone,
                address=Address(
                    street=record.shipping_street or "",
                    city=record.shipping_city or "",
                    state=record.shipping_state or "",
                    postal_code=record.shipping_postal_code or "",
                    country=record.shipping_country or "",
                ),
            ),
            items=tuple(
                OrderItem(
                    sku=item.sku,
                    name=item.product_name or item.sku,
                    quantity=item.quantity,
                    unit_price=Decimal(item.unit_price or 0),
                    line_total=Decimal(item.line_total or 0),
                    product_id=item.product_id,
                )
                for item in record.items
            ),
            status=record.status,
            payment_status=record.payment_status,
            currency=record.currency_code,
            subtotal=Decimal(record.subtotal_amount or 0),
            tax=Decimal(record.tax_amount or 0),
            shipping=Decimal(record.shipping_fee or 0),
            discount=Decimal(record.discount_amount or 0),
            total=Decimal(record.total_amount or 0),
            external_order_id=record.external_order_id,
            marketplace_connection_id=record.marketplace_connection_id,
            needs_status_push=bool(record.needs_status_push),
            tracking_number=record.tracking_number,
            carrier=record.carrier,
            erp_partner_id=record.erp_partner_id,
            erp_sale_order_id=record.erp_sale_order_id,
            erp_invoice_id=record.erp_invoice_id,
            erp_delivery_order_id=record.erp_delivery_order_id,
            workflow_triggered=bool(record.workflow_triggered),
            order_date=order_date,
        )
