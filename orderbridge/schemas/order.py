"""
Order Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from decimal import Decimal

from orderbridge.domain.order import Order, OrderStatus, PaymentStatus, StatusHistoryEntry
from .integration import DestinationFlags, ERPCredentials, IntegrationConfigs


class OrderItemCreate(BaseModel):
    product_id: Optional[str] = None
    sku: str
    product_name: Optional[str] = None
    quantity: int = Field(1, gt=0)
    unit_price: Decimal = Field(Decimal("0"), ge=0)


class AddressIn(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


class CustomerIn(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: AddressIn = AddressIn()


class OrderCreate(BaseModel):
    order_number: Optional[str] = None
    external_order_id: Optional[str] = None
    marketplace_connection_id: Optional[UUID] = None

    customer: CustomerIn

    currency: str = Field("TRY", min_length=3, max_length=3)
    tax: Decimal = Field(Decimal("0"), ge=0)
    shipping: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)

    payment_status: PaymentStatus = PaymentStatus.PENDING
    items: List[OrderItemCreate] = Field(..., min_length=1)


class StatusUpdateRequest(BaseModel):
    new_status: OrderStatus
    new_payment_status: Optional[PaymentStatus] = None
    note: Optional[str] = None
    changed_by: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    flags: DestinationFlags = DestinationFlags()
    integrations: IntegrationConfigs = IntegrationConfigs()


class PaymentStatusUpdate(BaseModel):
    new_payment_status: PaymentStatus
    note: Optional[str] = None
    changed_by: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    flags: DestinationFlags = DestinationFlags()
    integrations: IntegrationConfigs = IntegrationConfigs()


class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    refund_amount: Optional[Decimal] = Field(None, ge=0)
    processed_by: Optional[str] = None
    flags: DestinationFlags = DestinationFlags()
    integrations: IntegrationConfigs = IntegrationConfigs()


class NoteCreate(BaseModel):
    note: str = Field(..., min_length=1)
    changed_by: Optional[str] = None


class TriggerRequest(BaseModel):
    old_status: OrderStatus
    new_status: OrderStatus
    flags: Optional[DestinationFlags] = None  # None: defaults for new_status
    integrations: IntegrationConfigs = IntegrationConfigs()


class ProvisionRequest(BaseModel):
    erp: Optional[ERPCredentials] = None
    create_customer: bool = True
    create_invoice: bool = True
    create_delivery_order: bool = True


class OrderItemResponse(BaseModel):
    sku: str
    product_name: Optional[str]
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderResponse(BaseModel):
    id: UUID
    tenant_id: str
    order_number: str
    external_order_id: Optional[str]
    status: OrderStatus
    payment_status: PaymentStatus
    currency: str
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    customer_name: str
    customer_email: Optional[str]
    tracking_number: Optional[str]
    erp_sale_order_id: Optional[str]
    erp_invoice_id: Optional[str]
    erp_delivery_order_id: Optional[str]
    workflow_triggered: bool
    needs_status_push: bool
    order_date: datetime
    items: List[OrderItemResponse] = []

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            tenant_id=order.tenant_id,
            order_number=order.order_number,
            external_order_id=order.external_order_id,
            status=order.status,
            payment_status=order.payment_status,
            currency=order.currency,
            subtotal=order.subtotal,
            tax=order.tax,
            shipping=order.shipping,
            discount=order.discount,
            total=order.total,
            customer_name=order.customer.name,
            customer_email=order.customer.email,
            tracking_number=order.tracking_number,
            erp_sale_order_id=order.erp_sale_order_id,
            erp_invoice_id=order.erp_invoice_id,
            erp_delivery_order_id=order.erp_delivery_order_id,
            workflow_triggered=order.workflow_triggered,
            needs_status_push=order.needs_status_push,
            order_date=order.order_date,
            items=[
                OrderItemResponse(
                    sku=item.sku,
                    product_name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                )
                for item in order.items
            ],
        )


class HistoryEntryResponse(BaseModel):
    id: UUID
    old_status: Optional[OrderStatus]
    new_status: OrderStatus
    old_payment_status: Optional[PaymentStatus]
    new_payment_status: Optional[PaymentStatus]
    note: str
    changed_by: str
    changed_at: datetime
    change_type: str

    @classmethod
    def from_entry(cls, entry: StatusHistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            old_status=entry.old_status,
            new_status=entry.new_status,
            old_payment_status=entry.old_payment_status,
            new_payment_status=entry.new_payment_status,
            note=entry.note,
            changed_by=entry.changed_by,
            changed_at=entry.changed_at,
            change_type=entry.change_type(),
        )


class StatusChangeResponse(BaseModel):
    success: bool
    order: OrderResponse
    triggered_actions: List[str] = []
    errors: List[str] = []


class ProvisionResponse(BaseModel):
    success: bool
    order: OrderResponse
    partner_id: Optional[str] = None
    sale_order_id: Optional[str] = None
    invoice_id: Optional[str] = None
    delivery_order_id: Optional[str] = None
