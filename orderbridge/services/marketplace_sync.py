"""
Marketplace status push - shared by the sync orchestrator and the reconciler
"""
from dataclasses import dataclass
from typing import Optional
import asyncio
import logging
import time

from orderbridge.core.config import settings
from orderbridge.core.exceptions import ExternalServiceError, ValidationError
from orderbridge.domain.order import Order, OrderStatus
from orderbridge.domain.status_maps import marketplace_action_for
from orderbridge.integrations.base import AdapterResult, MarketplaceAdapter, ShipmentInfo

logger = logging.getLogger(__name__)

DESTINATION = "marketplace"


@dataclass
class MarketplacePushOutcome:
    """What was sent to the marketplace; action is None for statuses with no remote action"""
    action: Optional[str]
    label: Optional[str] = None
    tracking_number: Optional[str] = None
    synthetic_tracking: bool = False


async def call_adapter(destination: str, coro, timeout: Optional[float] = None) -> AdapterResult:
    """
    Await one adapter call under a deadline.

    A failed AdapterResult or an expired deadline becomes ExternalServiceError.
    """
    timeout = timeout if timeout is not None else settings.ADAPTER_TIMEOUT_SECONDS
    try:
        result = await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        raise ExternalServiceError(destination, f"timed out after {timeout:g}s")

    if not result.success:
        raise ExternalServiceError(destination, result.error or "Unknown error")
    return result


def resolve_shipment(order: Order) -> ShipmentInfo:
    """
    Shipment data for the marketplace "ship" action.

    Uses the order's own tracking data. Without it, a synthetic tracking id is
    generated when ALLOW_SYNTHETIC_TRACKING is on; otherwise shipping fails.
    """
    if order.tracking_number:
        return ShipmentInfo(
            tracking_number=order.tracking_number,
            carrier=order.carrier or settings.DEFAULT_CARRIER,
            tracking_url=settings.TRACKING_URL_TEMPLATE.format(tracking_number=order.tracking_number),
        )

    if not settings.ALLOW_SYNTHETIC_TRACKING:
        raise ValidationError(f"Tracking number required to ship order {order.order_number}")

    tracking_number = f"{settings.SYNTHETIC_TRACKING_PREFIX}-{order.order_number}-{int(time.time())}"
    logger.warning(f"Order {order.order_number} has no tracking number, generated synthetic {tracking_number}")
    return ShipmentInfo(
        tracking_number=tracking_number,
        carrier=order.carrier or settings.DEFAULT_CARRIER,
        tracking_url=settings.TRACKING_URL_TEMPLATE.format(tracking_number=tracking_number),
    )


async def push_status_to_marketplace(
    adapter: MarketplaceAdapter,
    order: Order,
    status: OrderStatus,
    reason: Optional[str] = None,
    timeout: Optional[float] = None,
) -> MarketplacePushOutcome:
    """
    Execute the marketplace action mapped from ``status``.

    Raises ExternalServiceError (adapter failure or timeout) or ValidationError
    (order not linked, missing shipment data).
    """
    if not order.external_order_id:
        raise ValidationError(f"Order {order.order_number} is not linked to marketplace")

    action = marketplace_action_for(status)
    if action is None:
        logger.debug(f"No marketplace action for status {status.value} (order {order.order_number})")
        return MarketplacePushOutcome(action=None)

    # Resolve shipment data before touching the remote side
    shipment = resolve_shipment(order) if action == "ship" else None

    await call_adapter(DESTINATION, adapter.test_connection(), timeout)

    if action == "approve":
        await call_adapter(DESTINATION, adapter.approve_order(order.external_order_id), timeout)
        label = "Marketplace order approved"
    elif action == "reject":
        await call_adapter(
            DESTINATION,
            adapter.reject_order(order.external_order_id, reason or "Order rejected"),
            timeout,
        )
        label = "Marketplace order rejected"
    else:
        await call_adapter(DESTINATION, adapter.create_shipment(order.external_order_id, shipment), timeout)
        synthetic = not order.tracking_number
        label = f"Marketplace shipment created (tracking {shipment.tracking_number}{', synthetic' if synthetic else ''})"
        logger.info(f"Marketplace shipment for {order.order_number}: {shipment.tracking_number}")
        return MarketplacePushOutcome(
            action=action,
            label=label,
            tracking_number=shipment.tracking_number,
            synthetic_tracking=synthetic,
        )

    logger.info(f"Marketplace {action} for order {order.order_number} ({order.external_order_id})")
    return MarketplacePushOutcome(action=action, label=label)
