"""
Order Models
"""
from sqlalchemy import Column, String, Numeric, Integer, Boolean, DateTime, ForeignKey, Text, Index, Uuid
from sqlalchemy.orm import relationship
from orderbridge.core import Base
from .base import UUIDMixin, TimestampMixin


class OrderRecord(Base, UUIDMixin, TimestampMixin):
    """Order Header"""
    __tablename__ = "orders"

    tenant_id = Column(String(64), nullable=False, index=True)
    order_number = Column(String(100), nullable=False)

    # Marketplace link
    external_order_id = Column(String(100), index=True)
    marketplace_connection_id = Column(Uuid(as_uuid=True), ForeignKey("channel_connection.id"))
    needs_status_push = Column(Boolean, default=False, nullable=False, index=True)

    # Customer
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(200))
    customer_phone = Column(String(30))
    shipping_street = Column(Text)
    shipping_city = Column(String(100))
    shipping_state = Column(String(100))
    shipping_postal_code = Column(String(20))
    shipping_country = Column(String(60))

    # Status
    status = Column(String(20), default="pending", nullable=False, index=True)  # pending, processing, confirmed, shipped, delivered, cancelled, refunded, failed
    payment_status = Column(String(20), default="pending", nullable=False)  # pending, paid, failed, refunded, partially_refunded

    # Shipping
    tracking_number = Column(String(100))
    carrier = Column(String(100))

    # Currency & amounts
    currency_code = Column(String(3), default="TRY", nullable=False)
    subtotal_amount = Column(Numeric(12, 2), default=0)
    tax_amount = Column(Numeric(12, 2), default=0)
    shipping_fee = Column(Numeric(12, 2), default=0)
    discount_amount = Column(Numeric(12, 2), default=0)
    total_amount = Column(Numeric(12, 2), default=0)

    # ERP linkage
    erp_partner_id = Column(String(50))
    erp_sale_order_id = Column(String(50))
    erp_invoice_id = Column(String(50))
    erp_delivery_order_id = Column(String(50))

    # Workflow automation
    workflow_triggered = Column(Boolean, default=False, nullable=False)

    order_datetime = Column(DateTime(timezone=True))

    # Relationships
    items = relationship(
        "OrderItemRecord",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemRecord.line_no",
    )
    connection = relationship("ChannelConnection", back_populates="orders")

    __table_args__ = (
        Index("ix_orders_tenant_number", tenant_id, order_number, unique=True),
    )


class OrderItemRecord(Base, UUIDMixin):
    """Order Item/Line"""
    __tablename__ = "order_items"

    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False)
    line_no = Column(Integer, nullable=False)
    product_id = Column(String(64))

    sku = Column(String(100), nullable=False)
    product_name = Column(String(300))
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Numeric(12, 2), default=0)
    line_total = Column(Numeric(12, 2), default=0)

    order = relationship("OrderRecord", back_populates="items")
