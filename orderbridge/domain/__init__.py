# Domain Package - pure order values and lifecycle rules
from .order import (
    Address,
    CustomerInfo,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    StatusHistoryEntry,
)
from .state_machine import OrderStateMachine, STATUS_TRANSITIONS
from .status_maps import MARKETPLACE_ACTIONS, REMOTE_STATUS_MAP, map_remote_status, marketplace_action_for

__all__ = [
    "Address", "CustomerInfo", "Order", "OrderItem", "OrderStatus", "PaymentStatus",
    "StatusHistoryEntry",
    "OrderStateMachine", "STATUS_TRANSITIONS",
    "MARKETPLACE_ACTIONS", "REMOTE_STATUS_MAP", "map_remote_status", "marketplace_action_for",
]
