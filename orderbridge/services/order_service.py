"""
Order Service - order use cases

Each use case validates through OrderStateMachine, persists the new order
value, appends to the status history and, when asked, fans the change out
through the SyncOrchestrator. Use cases never raise: failures come back as an
OrderResult with ``success=False``.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy.orm import Session

from orderbridge.core.exceptions import (
    AlreadyProvisionedError,
    ExternalServiceError,
    InvalidTransitionError,
    NotFoundError,
    OrderBridgeError,
    PersistenceError,
    ProvisioningStepError,
    UnsupportedProviderError,
    ValidationError,
)
from orderbridge.domain.order import (
    Address,
    CustomerInfo,
    Order,
    OrderItem,
    OrderStatus,
    StatusHistoryEntry,
    coerce_status,
)
from orderbridge.domain.state_machine import OrderStateMachine
from orderbridge.integrations.registry import build_erp_adapter, build_marketplace_adapter_for_connection
from orderbridge.models.integration import ChannelConnection
from orderbridge.schemas.integration import DestinationFlags, IntegrationConfigs
from orderbridge.schemas.order import (
    CancelRequest,
    NoteCreate,
    OrderCreate,
    PaymentStatusUpdate,
    ProvisionRequest,
    RefundRequest,
    StatusUpdateRequest,
    TriggerRequest,
)
from .order_repository import OrderRepository
from .provisioning_service import ERPProvisioningFlow, ProvisioningOptions, ProvisioningResult
from .status_history import StatusHistoryLedger
from .sync_orchestrator import Destinations, DispatchResult, SyncOrchestrator

logger = logging.getLogger(__name__)

ERP_ACTOR = "erp-provisioning"

# Exception class -> error code reported on failed results
ERROR_CODES = {
    ValidationError: "validation",
    InvalidTransitionError: "invalid_transition",
    NotFoundError: "not_found",
    AlreadyProvisionedError: "already_provisioned",
    ExternalServiceError: "external_service",
    UnsupportedProviderError: "unsupported_provider",
    PersistenceError: "persistence",
    ProvisioningStepError: "provisioning_step",
}

# Default destination flags per new status
STATUS_TRIGGERS = {
    OrderStatus.PENDING: DestinationFlags(),
    OrderStatus.PROCESSING: DestinationFlags(trigger_workflow=True, send_notification=True),
    OrderStatus.CONFIRMED: DestinationFlags(trigger_workflow=True, send_notification=True, update_marketplace=True),
    OrderStatus.SHIPPED: DestinationFlags(trigger_workflow=True, send_notification=True, update_marketplace=True),
    OrderStatus.DELIVERED: DestinationFlags(
        trigger_workflow=True, send_notification=True, update_marketplace=True, update_erp=True
    ),
    OrderStatus.CANCELLED: DestinationFlags(
        trigger_workflow=True, send_notification=True, update_marketplace=True, update_erp=True
    ),
    OrderStatus.REFUNDED: DestinationFlags(
        trigger_workflow=True, send_notification=True, update_marketplace=True, update_erp=True
    ),
    OrderStatus.FAILED: DestinationFlags(trigger_workflow=True, send_notification=True),
}


@dataclass
class OrderResult:
    success: bool
    order: Optional[Order] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    triggered_actions: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    history: List[StatusHistoryEntry] = field(default_factory=list)
    provisioning: Optional[ProvisioningResult] = None


@dataclass
class OrderListResult:
    success: bool
    orders: List[Order] = field(default_factory=list)
    total: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None


def status_triggers(status) -> DestinationFlags:
    """Destinations notified by default when an order enters ``status``"""
    try:
        status = coerce_status(status)
    except ValidationError:
        return STATUS_TRIGGERS[OrderStatus.PENDING].model_copy()
    return STATUS_TRIGGERS.get(status, STATUS_TRIGGERS[OrderStatus.PENDING]).model_copy()


class OrderService:
    """Order use cases bound to one database session"""

    def __init__(self, db: Session, destinations: Optional[Destinations] = None):
        self.db = db
        self.repository = OrderRepository(db)
        self.ledger = StatusHistoryLedger(db)
        self.destinations = destinations or Destinations()

    # ========== Queries ==========

    def get_order(self, tenant_id: str, order_id: UUID) -> OrderResult:
        try:
            return OrderResult(success=True, order=self.repository.get(order_id, tenant_id))
        except Exception as e:
            return self._failure(e)

    def list_orders(self, tenant_id: str, status: Optional[str] = None, page: int = 1, per_page: int = 50) -> OrderListResult:
        try:
            orders, total = self.repository.list(tenant_id, status, page, per_page)
        except OrderBridgeError as e:
            return OrderListResult(success=False, error=e.message, error_code=self._code(e))
        return OrderListResult(success=True, orders=orders, total=total)

    def get_status_history(self, tenant_id: str, order_id: UUID) -> OrderResult:
        try:
            order = self.repository.get(order_id, tenant_id)
            return OrderResult(success=True, order=order, history=self.ledger.read_all(order.id))
        except Exception as e:
            return self._failure(e)

    # ========== Create ==========

    def create_order(self, tenant_id: str, data: OrderCreate, created_by: Optional[str] = None) -> OrderResult:
        try:
            items = tuple(
                OrderItem(
                    sku=item.sku,
                    name=item.product_name or item.sku,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    product_id=item.product_id,
                )
                for item in data.items
            )
            if not items:
                raise ValidationError("Order must have at least one item")

            subtotal = sum((item.line_total for item in items), Decimal("0"))
            total = subtotal + data.tax + data.shipping - data.discount
            if total < 0:
                raise ValidationError("Discount exceeds order amount")

            if data.marketplace_connection_id:
                self._get_connection(tenant_id, data.marketplace_connection_id)

            order_number = data.order_number or self.repository.next_order_number(
                tenant_id, f"ORD-{datetime.now().strftime('%Y%m%d')}"
            )
            address = data.customer.address
            order = Order(
                id=uuid4(),
                tenant_id=tenant_id,
                order_number=order_number,
                customer=CustomerInfo(
                    name=data.customer.name,
                    email=data.customer.email,
                    phone=data.customer.phone,
                    address=Address(
                        street=address.street,
                        city=address.city,
                        state=address.state,
                        postal_code=address.postal_code,
                        country=address.country,
                    ),
                ),
                items=items,
                payment_status=data.payment_status,
                currency=data.currency.upper(),
                subtotal=subtotal,
                tax=data.tax,
                shipping=data.shipping,
                discount=data.discount,
                total=total,
                external_order_id=data.external_order_id,
                marketplace_connection_id=data.marketplace_connection_id,
            )

            self.repository.add(order, commit=False)
            self.ledger.append(StatusHistoryEntry(
                order_id=order.id,
                tenant_id=tenant_id,
                new_status=order.status,
                new_payment_status=order.payment_status,
                note="Order created",
                changed_by=created_by or "system",
            ))
            return OrderResult(success=True, order=order)
        except Exception as e:
            self.repository.rollback()
            return self._failure(e)

    # ========== Status changes ==========

    async def update_order_status(self, tenant_id: str, order_id: UUID, request: StatusUpdateRequest) -> OrderResult:
        try:
            order = self.repository.get(order_id, tenant_id)
            if request.new_status == OrderStatus.REFUNDED:
                # Same guard and payment update as process_refund
                updated, note = OrderStateMachine.apply_refund(order, request.note)
            else:
                updated, note = OrderStateMachine.apply_transition(order, request.new_status, request.note)
            if request.new_payment_status and request.new_payment_status != updated.payment_status:
                updated = OrderStateMachine.apply_payment_status(updated, request.new_payment_status)
            if request.tracking_number:
                updated = updated.evolve(tracking_number=request.tracking_number, carrier=request.carrier or updated.carrier)

            return await self._commit_change(
                order, updated, note,
                actor=request.changed_by or "system",
                flags=request.flags,
                integrations=request.integrations,
            )
        except Exception as e:
            self.repository.rollback()
            return self._failure(e)

    def update_payment_status(self, tenant_id: str, order_id: UUID, request: PaymentStatusUpdate) -> OrderResult:
        try:
            order = self.repository.get(order_id, tenant_id)
            updated = OrderStateMachine.apply_payment_status(order, request.new_payment_status)

            self.repository.save(updated, commit=False)
            self.ledger.append(StatusHistoryEntry(
                order_id=order.id,
                tenant_id=tenant_id,
                old_status=order.status,
                new_status=updated.status,
                old_payment_status=order.payment_status,
                new_payment_status=updated.payment_status,
                note=request.note or (
                    f"Payment status changed: {order.payment_status.value} → {updated.payment_status.value}"
                ),
                changed_by=request.changed_by or "system",
            ))
            return OrderResult(success=True, order=updated)
        except Exception as e:
            self.repository.rollback()
            return self._failure(e)

    async def cancel_order(self, tenant_id: str, order_id: UUID, request: CancelRequest) -> OrderResult:
        try:
            order = self.repository.get(order_id, tenant_id)
            if not OrderStateMachine.can_be_cancelled(order):
                raise InvalidTransitionError(
                    order.status.value,
                    OrderStatus.CANCELLED.value,
                    f"Order cannot be cancelled in status {order.status.value}",
                )

            reason = request.reason or "Order cancelled"
            updated, note = OrderStateMachine.apply_transition(order, OrderStatus.CANCELLED, reason)
            return await self._commit_change(
                order, updated, note,
                actor=request.cancelled_by or "system",
                flags=request.flags,
                integrations=request.integrations,
                reason=reason,
            )
        except Exception as e:
            self.repository.rollback()
            return self._failure(e)

    async def process_refund(self, tenant_id: str, order_id: UUID, request: RefundRequest) -> OrderResult:
        try:
            order = self.repository.get(order_id, tenant_id)
            if request.refund_amount is not None and request.refund_amount > order.total:
                raise ValidationError(
                    f"Refund amount {request.refund_amount} exceeds order total {order.formatted_total()}"
                )

            updated, _ = OrderStateMachine.apply_refund(order, request.reason)
            amount = request.refund_amount if request.refund_amount is not None else order.total
            note = f"Refund processed: {request.reason} ({amount:.2f} {order.currency})"
            return await self._commit_change(
                order, updated, note,
                actor=request.processed_by or "system",
                flags=request.flags,
                integrations=request.integrations,
                reason=request.reason,
            )
        except Exception as e:
            self.repository.rollback()
            return self._failure(e)

    def add_note(self, tenant_id: str, order_id: UUID, request: NoteCreate) -> OrderResult:
        """Attach a note to the history without changing the status"""
        try:
            order = self.repository.get(order_id, tenant_id)
            entry = self.ledger.append(StatusHistoryEntry(
                order_id=order.id,
                tenant_id=tenant_id,
                old_status=order.status,
                new_status=order.status,
                note=request.note,
                changed_by=request.changed_by or "system",
            ))
            return OrderResult(success=True, order=order, history=[entry])
        except Exception as e:
            self.repository.rollback()
            return self._failure(e)

    async def trigger_status_update(self, tenant_id: str, order_id: UUID, request: TriggerRequest) -> OrderResult:
        """Re-run destination fan-out for a status change that was already applied"""
        try:
            order = self.repository.get(order_id, tenant_id)
            flags = request.flags or status_triggers(request.new_status)
            orchestrator = self._orchestrator(order, request.integrations)

            dispatched = await orchestrator.dispatch(
                order, request.new_status, flags, previous_status=request.old_status
            )
            order = self._record_dispatch(order, dispatched)
            return OrderResult(
                success=True,
                order=order,
                triggered_actions=dispatched.triggered_actions,
                errors=dispatched.errors,
                history=[dispatched.history_entry] if dispatched.history_entry else [],
            )
        except Exception as e:
            self.repository.rollback()
            return self._failure(e)

    # ========== ERP provisioning ==========

    async def provision_to_erp(self, tenant_id: str, order_id: UUID, request: ProvisionRequest) -> OrderResult:
        return await self._provision(tenant_id, order_id, request, resume=False)

    async def resume_erp_provisioning(self, tenant_id: str, order_id: UUID, request: ProvisionRequest) -> OrderResult:
        return await self._provision(tenant_id, order_id, request, resume=True)

    async def _provision(self, tenant_id: str, order_id: UUID, request: ProvisionRequest, resume: bool) -> OrderResult:
        try:
            order = self.repository.get(order_id, tenant_id)
            erp = self.destinations.erp
            if erp is None:
                if request.erp is None:
                    raise ValidationError("ERP configuration is required")
                erp = build_erp_adapter(request.erp)

            options = ProvisioningOptions(
                create_customer=request.create_customer,
                create_invoice=request.create_invoice,
                create_delivery_order=request.create_delivery_order,
                picking_type_id=request.erp.picking_type_id if request.erp else None,
                stock_location_id=request.erp.stock_location_id if request.erp else None,
                customer_location_id=request.erp.customer_location_id if request.erp else None,
            )
            flow = ERPProvisioningFlow(erp)
        except Exception as e:
            return self._failure(e)

        try:
            provisioned = await (flow.resume(order, options) if resume else flow.provision(order, options))
        except ProvisioningStepError as e:
            partial = e.partial or ProvisioningResult()
            saved = self._store_linkage(order, partial, f"ERP provisioning stopped at {e.step}: {e.reason}")
            failure = self._failure(e)
            failure.order = saved
            failure.provisioning = partial
            return failure
        except Exception as e:
            return self._failure(e)

        ids = [f"sale order {provisioned.sale_order_id}"]
        if provisioned.invoice_id:
            ids.append(f"invoice {provisioned.invoice_id}")
        if provisioned.delivery_order_id:
            ids.append(f"delivery order {provisioned.delivery_order_id}")
        prefix = "ERP provisioning resumed" if resume else "Order provisioned to ERP"

        saved = self._store_linkage(order, provisioned, f"{prefix}: {', '.join(ids)}")
        if saved is None:
            return OrderResult(
                success=False,
                order=order,
                error="ERP records created but linkage could not be saved",
                error_code="persistence",
                provisioning=provisioned,
            )
        return OrderResult(success=True, order=saved, provisioning=provisioned)

    def _store_linkage(self, order: Order, provisioned: ProvisioningResult, note: str) -> Optional[Order]:
        """Persist ERP ids and a history note; returns None when storage fails"""
        if not any((provisioned.partner_id, provisioned.sale_order_id, provisioned.invoice_id, provisioned.delivery_order_id)):
            return order

        updated = order.with_erp_linkage(
            partner_id=provisioned.partner_id,
            sale_order_id=provisioned.sale_order_id,
            invoice_id=provisioned.invoice_id,
            delivery_order_id=provisioned.delivery_order_id,
        )
        try:
            self.repository.save(updated, commit=False)
            self.ledger.append(StatusHistoryEntry(
                order_id=order.id,
                tenant_id=order.tenant_id,
                old_status=order.status,
                new_status=order.status,
                note=note,
                changed_by=ERP_ACTOR,
            ))
        except OrderBridgeError as e:
            logger.error(f"Failed to store ERP linkage for {order.order_number}: {e}")
            self.repository.rollback()
            return None
        return updated

    # ========== Helpers ==========

    async def _commit_change(
        self,
        order: Order,
        updated: Order,
        note: str,
        actor: str,
        flags: Optional[DestinationFlags],
        integrations: Optional[IntegrationConfigs],
        reason: Optional[str] = None,
    ) -> OrderResult:
        """Persist a status change with its history entry, then fan out"""
        status_changed = updated.status != order.status
        if status_changed and updated.is_marketplace_linked:
            updated = updated.evolve(needs_status_push=True)

        # Unknown providers fail here, before anything is written
        orchestrator = None
        if flags is not None and (
            flags.update_marketplace or flags.update_erp or flags.trigger_workflow or flags.send_notification
        ):
            orchestrator = self._orchestrator(updated, integrations)

        self.repository.save(updated, commit=False)
        entry = self.ledger.append(StatusHistoryEntry(
            order_id=order.id,
            tenant_id=order.tenant_id,
            old_status=order.status,
            new_status=updated.status,
            old_payment_status=order.payment_status,
            new_payment_status=updated.payment_status,
            note=note,
            changed_by=actor,
        ))
        logger.info(f"Order {order.order_number}: {order.status.value} -> {updated.status.value} by {actor}")

        result = OrderResult(success=True, order=updated, history=[entry])
        if orchestrator is None:
            return result

        dispatched = await orchestrator.dispatch(
            updated, updated.status, flags, previous_status=order.status, actor=actor, reason=reason
        )
        result.order = self._record_dispatch(updated, dispatched)
        result.triggered_actions = dispatched.triggered_actions
        result.errors = dispatched.errors
        if dispatched.history_entry:
            result.history.append(dispatched.history_entry)
        return result

    def _record_dispatch(self, order: Order, dispatched: DispatchResult) -> Order:
        """Store what the fan-out achieved on the order"""
        changes = {}
        if dispatched.marketplace_pushed and order.needs_status_push:
            changes["needs_status_push"] = False
        if dispatched.tracking_number and not order.tracking_number:
            changes["tracking_number"] = dispatched.tracking_number
        if dispatched.workflow_triggered and not order.workflow_triggered:
            changes["workflow_triggered"] = True
        if not changes:
            return order

        updated = order.evolve(**changes)
        try:
            self.repository.save(updated)
        except OrderBridgeError as e:
            logger.error(f"Failed to store dispatch outcome for {order.order_number}: {e}")
            dispatched.errors.append(f"order update failed: {e.message}")
            return order
        return updated

    def _orchestrator(self, order: Order, integrations: Optional[IntegrationConfigs]) -> SyncOrchestrator:
        """Injected destinations, overridden by per-request config, marketplace defaulting to the order's connection"""
        destinations = self.destinations.merged(Destinations.from_configs(integrations))
        if destinations.marketplace is None and order.marketplace_connection_id:
            connection = self.db.query(ChannelConnection).filter(
                ChannelConnection.id == order.marketplace_connection_id,
                ChannelConnection.is_active == True,
            ).first()
            if connection:
                destinations.marketplace = build_marketplace_adapter_for_connection(connection)
        return SyncOrchestrator(self.ledger, destinations)

    def _get_connection(self, tenant_id: str, connection_id: UUID) -> ChannelConnection:
        connection = self.db.query(ChannelConnection).filter(ChannelConnection.id == connection_id).first()
        if not connection or connection.tenant_id != tenant_id:
            raise NotFoundError(f"Marketplace connection not found: {connection_id}")
        return connection

    @staticmethod
    def _code(error: OrderBridgeError) -> str:
        for cls in type(error).__mro__:
            if cls in ERROR_CODES:
                return ERROR_CODES[cls]
        return "error"

    def _failure(self, error: Exception) -> OrderResult:
        if isinstance(error, OrderBridgeError):
            logger.warning(f"{type(error).__name__}: {error.message}")
            return OrderResult(success=False, error=error.message, error_code=self._code(error))

        logger.exception(f"Unexpected error: {error}")
        return OrderResult(success=False, error=str(error) or type(error).__name__, error_code="error")
