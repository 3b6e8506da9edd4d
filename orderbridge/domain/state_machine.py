"""
Order lifecycle state machine. Pure: callers persist and record history.
"""
from typing import Dict, FrozenSet, Optional, Tuple, Union

from orderbridge.core.exceptions import InvalidTransitionError
from .order import Order, OrderStatus, PaymentStatus, coerce_status, coerce_payment_status

# Current status -> allowed next statuses
STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.FAILED: frozenset({OrderStatus.PROCESSING}),
}

# Default history note keyed by target status
TRANSITION_NOTES: Dict[OrderStatus, str] = {
    OrderStatus.PROCESSING: "Order is being processed",
    OrderStatus.CONFIRMED: "Order confirmed",
    OrderStatus.SHIPPED: "Order shipped",
    OrderStatus.DELIVERED: "Order delivered",
    OrderStatus.CANCELLED: "Order cancelled",
    OrderStatus.REFUNDED: "Order refunded",
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.CONFIRMED})
REFUNDABLE_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED})


class OrderStateMachine:
    """Validates status changes against STATUS_TRANSITIONS"""

    @staticmethod
    def allowed_transitions(current: Union[str, OrderStatus]) -> FrozenSet[OrderStatus]:
        return STATUS_TRANSITIONS.get(coerce_status(current), frozenset())

    @staticmethod
    def is_legal_transition(current: Union[str, OrderStatus], target: Union[str, OrderStatus]) -> bool:
        # Same-state pairs are absent from the table and therefore illegal
        return coerce_status(target) in OrderStateMachine.allowed_transitions(current)

    @staticmethod
    def can_be_cancelled(order: Order) -> bool:
        return order.status in CANCELLABLE_STATUSES

    @staticmethod
    def can_be_refunded(order: Order) -> bool:
        return (
            order.status in REFUNDABLE_STATUSES
            and order.payment_status == PaymentStatus.PAID
            and order.status != OrderStatus.REFUNDED
        )

    @staticmethod
    def transition_note(current: OrderStatus, target: OrderStatus) -> str:
        return TRANSITION_NOTES.get(target, f"Order status changed: {current.value} → {target.value}")

    @staticmethod
    def apply_transition(
        order: Order,
        target: Union[str, OrderStatus],
        note: Optional[str] = None,
    ) -> Tuple[Order, str]:
        """
        Move the order to ``target``.

        Returns the new order value and the history note (the given one, or a
        note derived from the target status).
        Raises InvalidTransitionError when the table does not allow it.
        """
        target = coerce_status(target)
        if not OrderStateMachine.is_legal_transition(order.status, target):
            raise InvalidTransitionError(order.status.value, target.value)

        return order.with_status(target), note or OrderStateMachine.transition_note(order.status, target)

    @staticmethod
    def apply_refund(order: Order, reason: Optional[str] = None) -> Tuple[Order, str]:
        """Refund a shipped or delivered paid order: status and payment both become refunded"""
        if not OrderStateMachine.can_be_refunded(order):
            raise InvalidTransitionError(
                order.status.value,
                OrderStatus.REFUNDED.value,
                f"Order cannot be refunded (status: {order.status.value}, payment: {order.payment_status.value})",
            )
        refunded = order.evolve(status=OrderStatus.REFUNDED, payment_status=PaymentStatus.REFUNDED)
        return refunded, reason or TRANSITION_NOTES[OrderStatus.REFUNDED]

    @staticmethod
    def apply_payment_status(order: Order, payment_status: Union[str, PaymentStatus]) -> Order:
        payment_status = coerce_payment_status(payment_status)
        if payment_status == order.payment_status:
            raise InvalidTransitionError(
                order.payment_status.value,
                payment_status.value,
                f"Payment status is already {payment_status.value}",
            )
        return order.with_payment_status(payment_status)
