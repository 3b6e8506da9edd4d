"""
Status lookup tables shared by every sync path.

Import these tables instead of redefining them at call sites.
"""
from typing import Dict, Optional

from .order import OrderStatus, PaymentStatus

# Internal status -> marketplace action
MARKETPLACE_ACTIONS: Dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "approve",
    OrderStatus.SHIPPED: "ship",
    OrderStatus.CANCELLED: "reject",
    OrderStatus.FAILED: "reject",
}

# Marketplace status string -> internal status
REMOTE_STATUS_MAP: Dict[str, OrderStatus] = {
    "Created": OrderStatus.PENDING,
    "Pending": OrderStatus.PENDING,
    "Approved": OrderStatus.CONFIRMED,
    "Confirmed": OrderStatus.CONFIRMED,
    "Packed": OrderStatus.PROCESSING,
    "Shipped": OrderStatus.SHIPPED,
    "Delivered": OrderStatus.DELIVERED,
    "Cancelled": OrderStatus.CANCELLED,
    "Returned": OrderStatus.REFUNDED,
    "Failed": OrderStatus.FAILED,
}

# Marketplace payment status string -> internal payment status
REMOTE_PAYMENT_STATUS_MAP: Dict[str, PaymentStatus] = {
    "Pending": PaymentStatus.PENDING,
    "Paid": PaymentStatus.PAID,
    "Failed": PaymentStatus.FAILED,
    "Refunded": PaymentStatus.REFUNDED,
}

# Internal status -> ERP sale order state
ERP_SALE_ORDER_STATES: Dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "sale",
    OrderStatus.DELIVERED: "done",
    OrderStatus.CANCELLED: "cancel",
}


def marketplace_action_for(status: OrderStatus) -> Optional[str]:
    """Marketplace action for a status, or None when the status needs no remote action"""
    return MARKETPLACE_ACTIONS.get(status)


def map_remote_status(remote_status: str) -> OrderStatus:
    """Map a marketplace status string to the internal enumeration (unknown -> pending)"""
    return REMOTE_STATUS_MAP.get(remote_status, OrderStatus.PENDING)


def erp_state_for(status: OrderStatus) -> Optional[str]:
    return ERP_SALE_ORDER_STATES.get(status)


def map_remote_payment_status(remote_status: Optional[str]) -> PaymentStatus:
    return REMOTE_PAYMENT_STATUS_MAP.get(remote_status or "", PaymentStatus.PENDING)
