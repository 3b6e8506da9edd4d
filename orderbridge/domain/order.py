"""
Order value types - immutable snapshots of an order and its status history
"""
import dataclasses
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple, Union

from orderbridge.core.exceptions import ValidationError


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


def coerce_status(value: Union[str, OrderStatus]) -> OrderStatus:
    """Convert a raw string to OrderStatus, rejecting values outside the enumeration"""
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown order status: {value}")


def coerce_payment_status(value: Union[str, PaymentStatus]) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown payment status: {value}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Address = field(default_factory=Address)


@dataclass(frozen=True)
class OrderItem:
    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Optional[Decimal] = None
    product_id: Optional[str] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValidationError(f"Quantity must be positive for {self.sku}")
        if self.unit_price < 0:
            raise ValidationError(f"Unit price cannot be negative for {self.sku}")
        if self.line_total is None:
            object.__setattr__(self, "line_total", self.unit_price * self.quantity)
        if self.line_total < 0:
            raise ValidationError(f"Line total cannot be negative for {self.sku}")


MONEY_FIELDS = ("subtotal", "tax", "shipping", "discount", "total")


@dataclass(frozen=True)
class Order:
    """
    Immutable order aggregate.

    Every change produces a new value through ``evolve``; the persistent row
    is written by the repository, never by the value itself.
    """
    id: uuid.UUID
    tenant_id: str
    order_number: str
    customer: CustomerInfo
    items: Tuple[OrderItem, ...] = ()
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING

    # Money (single currency for all amounts)
    currency: str = "TRY"
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")

    # Marketplace link
    external_order_id: Optional[str] = None
    marketplace_connection_id: Optional[uuid.UUID] = None
    needs_status_push: bool = False

    # Shipping
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None

    # ERP linkage
    erp_partner_id: Optional[str] = None
    erp_sale_order_id: Optional[str] = None
    erp_invoice_id: Optional[str] = None
    erp_delivery_order_id: Optional[str] = None

    # Workflow automation
    workflow_triggered: bool = False

    order_date: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "status", coerce_status(self.status))
        object.__setattr__(self, "payment_status", coerce_payment_status(self.payment_status))
        object.__setattr__(self, "items", tuple(self.items))

        if not self.currency or len(self.currency) != 3:
            raise ValidationError(f"Invalid currency code: {self.currency!r}")
        for name in MONEY_FIELDS:
            value = Decimal(str(getattr(self, name)))
            if value < 0:
                raise ValidationError(f"{name} cannot be negative")
            object.__setattr__(self, name, value)

    # ========== Functional updates ==========

    def evolve(self, **changes) -> "Order":
        """Return a copy with the given fields replaced (validation re-runs)"""
        return dataclasses.replace(self, **changes)

    def with_status(self, status: OrderStatus) -> "Order":
        return self.evolve(status=status)

    def with_payment_status(self, payment_status: PaymentStatus) -> "Order":
        return self.evolve(payment_status=payment_status)

    def with_erp_linkage(
        self,
        partner_id: Optional[str] = None,
        sale_order_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        delivery_order_id: Optional[str] = None,
    ) -> "Order":
        """Fill ERP ids; values already present are kept when the argument is None"""
        return self.evolve(
            erp_partner_id=partner_id or self.erp_partner_id,
            erp_sale_order_id=sale_order_id or self.erp_sale_order_id,
            erp_invoice_id=invoice_id or self.erp_invoice_id,
            erp_delivery_order_id=delivery_order_id or self.erp_delivery_order_id,
        )

    # ========== Predicates ==========

    @property
    def is_marketplace_linked(self) -> bool:
        return bool(self.external_order_id)

    @property
    def is_erp_provisioned(self) -> bool:
        return bool(self.erp_sale_order_id)

    def formatted_total(self) -> str:
        return f"{self.total:.2f} {self.currency}"


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One immutable line of an order's audit trail"""
    order_id: uuid.UUID
    tenant_id: str
    new_status: OrderStatus
    note: str = ""
    changed_by: str = "system"
    old_status: Optional[OrderStatus] = None
    old_payment_status: Optional[PaymentStatus] = None
    new_payment_status: Optional[PaymentStatus] = None
    changed_at: datetime = field(default_factory=utcnow)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def is_status_change(self) -> bool:
        return self.old_status is not None and self.old_status != self.new_status

    def is_payment_status_change(self) -> bool:
        return (
            self.old_payment_status is not None
            and self.new_payment_status is not None
            and self.old_payment_status != self.new_payment_status
        )

    def is_system_change(self) -> bool:
        return self.changed_by in ("", "system")

    def change_type(self) -> str:
        if self.is_status_change():
            return "status"
        if self.is_payment_status_change():
            return "payment"
        if self.note:
            return "note"
        return "system"

    def describe(self) -> str:
        if self.is_status_change():
            return f"Order status changed: {self.old_status.value} → {self.new_status.value}"
        if self.is_payment_status_change():
            return f"Payment status changed: {self.old_payment_status.value} → {self.new_payment_status.value}"
        return "Order updated"
