"""
Order Import Service - pull marketplace orders into the order store

New marketplace orders are created; known ones are updated when the marketplace
reports a different status or payment status. Status changes go through the
state machine and are recorded in the status history. Failures are counted per
order and never abort the batch.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4
import logging
import time

from orderbridge.core.config import settings
from orderbridge.core.exceptions import OrderBridgeError, ValidationError
from orderbridge.domain.order import Address, CustomerInfo, Order, OrderItem, StatusHistoryEntry, utcnow
from orderbridge.domain.state_machine import OrderStateMachine
from orderbridge.domain.status_maps import map_remote_payment_status, map_remote_status
from orderbridge.integrations.base import MarketplaceAdapter, RemoteOrder
from orderbridge.models.integration import ChannelConnection
from .marketplace_sync import call_adapter
from .order_repository import OrderRepository
from .reconciliation_service import SYNC_ACTOR, SyncResult
from .status_history import StatusHistoryLedger

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
SKIPPED = "skipped"


@dataclass
class ImportResult(SyncResult):
    """SyncResult with create / update split"""
    created: int = 0
    updated: int = 0

    def stats(self) -> dict:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
        }


def _money(value) -> Decimal:
    return Decimal(str(value or 0))


class OrderImporter:
    """Imports one connection's marketplace orders"""

    def __init__(self, db, marketplace: MarketplaceAdapter):
        self.db = db
        self.marketplace = marketplace
        self.repository = OrderRepository(db)
        self.ledger = StatusHistoryLedger(db)

    async def import_orders(
        self,
        connection: ChannelConnection,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        status: Optional[str] = None,
        max_orders: Optional[int] = None,
    ) -> ImportResult:
        """
        Fetch orders page by page and create or update them.

        Raises ExternalServiceError when the marketplace is unreachable or a
        page cannot be fetched.
        """
        started = time.monotonic()
        result = ImportResult()
        max_orders = max_orders or settings.IMPORT_MAX_ORDERS
        logger.info(f"Importing orders for {connection.provider}/{connection.seller_id} ({time_from} - {time_to})")

        await call_adapter("marketplace", self.marketplace.test_connection())

        page = 0
        while result.processed < max_orders:
            fetched = await call_adapter(
                "marketplace",
                self.marketplace.get_orders(
                    time_from=time_from,
                    time_to=time_to,
                    status=status,
                    page=page,
                    page_size=settings.IMPORT_PAGE_SIZE,
                ),
            )
            data = fetched.data or {}

            for message in data.get("errors") or []:
                result.processed += 1
                result.add_error("", message)

            for remote in data.get("orders") or []:
                if result.processed >= max_orders:
                    break
                result.processed += 1
                self._import_one(connection, remote, result)

            if not data.get("has_more"):
                break
            page += 1

        result.duration_seconds = time.monotonic() - started
        logger.info(
            f"Import completed for {connection.provider}/{connection.seller_id}: "
            f"processed={result.processed}, created={result.created}, updated={result.updated}, "
            f"skipped={result.skipped}, failed={result.failed}"
        )
        return result

    def _import_one(self, connection: ChannelConnection, remote: RemoteOrder, result: ImportResult):
        try:
            existing = self.repository.find_by_external_id(
                connection.tenant_id, remote.external_order_id, connection.id
            )
            outcome = self._create(connection, remote) if existing is None else self._update(existing, remote)
        except OrderBridgeError as e:
            self.repository.rollback()
            result.add_error(remote.external_order_id, f"Failed to process order {remote.order_number}: {e.message}")
            return
        except Exception as e:
            logger.exception(f"Unexpected error importing order {remote.order_number}")
            self.repository.rollback()
            result.add_error(remote.external_order_id, f"Failed to process order {remote.order_number}: {e}")
            return

        if outcome == CREATED:
            result.created += 1
            result.succeeded += 1
        elif outcome == UPDATED:
            result.updated += 1
            result.succeeded += 1
        else:
            result.skipped += 1

    def _create(self, connection: ChannelConnection, remote: RemoteOrder) -> str:
        if not remote.items:
            raise ValidationError("Order has no items")

        order = Order(
            id=uuid4(),
            tenant_id=connection.tenant_id,
            order_number=remote.order_number,
            customer=CustomerInfo(
                name=remote.customer_name or remote.order_number,
                email=remote.customer_email,
                phone=remote.customer_phone,
                address=Address(
                    street=remote.shipping_street,
                    city=remote.shipping_city,
                    state=remote.shipping_state,
                    postal_code=remote.shipping_postal_code,
                    country=remote.shipping_country,
                ),
            ),
            items=tuple(
                OrderItem(
                    sku=item.sku,
                    name=item.product_name or item.sku,
                    quantity=item.quantity,
                    unit_price=_money(item.unit_price),
                    line_total=_money(item.total_price) if item.total_price is not None else None,
                    product_id=item.product_id,
                )
                for item in remote.items
            ),
            status=map_remote_status(remote.status),
            payment_status=map_remote_payment_status(remote.payment_status),
            currency=remote.currency.upper(),
            subtotal=_money(remote.subtotal),
            tax=_money(remote.tax),
            shipping=_money(remote.shipping_fee),
            total=_money(remote.total_amount),
            external_order_id=remote.external_order_id,
            marketplace_connection_id=connection.id,
            order_date=remote.order_date or utcnow(),
        )

        self.repository.add(order, commit=False)
        self.ledger.append(StatusHistoryEntry(
            order_id=order.id,
            tenant_id=order.tenant_id,
            new_status=order.status,
            new_payment_status=order.payment_status,
            note=f"Order imported from marketplace: {remote.status}",
            changed_by=SYNC_ACTOR,
        ))
        return CREATED

    def _update(self, existing: Order, remote: RemoteOrder) -> str:
        if existing.needs_status_push:
            # Local change not pushed yet; it is newer than the marketplace copy
            logger.debug(f"Skipping import of {existing.order_number}: status push pending")
            return SKIPPED

        mapped = map_remote_status(remote.status)
        payment_status = (
            map_remote_payment_status(remote.payment_status) if remote.payment_status else existing.payment_status
        )
        if mapped == existing.status and payment_status == existing.payment_status:
            return SKIPPED

        updated, note = existing, f"Payment status updated from marketplace: {remote.payment_status}"
        if mapped != existing.status:
            updated, note = OrderStateMachine.apply_transition(
                existing, mapped, note=f"Status updated from marketplace: {remote.status}"
            )
        if payment_status != existing.payment_status:
            updated = updated.with_payment_status(payment_status)

        self.repository.save(updated, commit=False)
        self.ledger.append(StatusHistoryEntry(
            order_id=existing.id,
            tenant_id=existing.tenant_id,
            old_status=existing.status,
            new_status=updated.status,
            old_payment_status=existing.payment_status,
            new_payment_status=updated.payment_status,
            note=note,
            changed_by=SYNC_ACTOR,
        ))
        logger.info(f"Updated order {existing.order_number} from marketplace ({remote.status})")
        return UPDATED
