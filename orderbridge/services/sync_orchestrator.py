"""
Sync Orchestrator - fans one status change out to the external destinations

Destinations are attempted independently: a failure in one never prevents the
attempt of another. After all attempts exactly one history entry is written.
"""
from dataclasses import dataclass, field
from typing import List, Optional
import asyncio
import logging

from orderbridge.core.config import settings
from orderbridge.core.exceptions import OrderBridgeError, PersistenceError, ValidationError
from orderbridge.domain.order import Order, OrderStatus, StatusHistoryEntry, coerce_status, utcnow
from orderbridge.domain.status_maps import erp_state_for
from orderbridge.integrations.base import ERPAdapter, MarketplaceAdapter, NotificationAdapter, WorkflowAdapter
from orderbridge.integrations.registry import (
    build_erp_adapter,
    build_marketplace_adapter,
    build_notification_adapter,
    build_workflow_adapter,
)
from orderbridge.schemas.integration import DestinationFlags, IntegrationConfigs
from .marketplace_sync import call_adapter, push_status_to_marketplace
from .status_history import StatusHistoryLedger

logger = logging.getLogger(__name__)

# Merge order of branch outcomes
DESTINATION_ORDER = ("marketplace", "erp", "workflow", "notification")


@dataclass
class Destinations:
    """Wired destination adapters; a missing adapter means that destination is not configured"""
    marketplace: Optional[MarketplaceAdapter] = None
    erp: Optional[ERPAdapter] = None
    workflow: Optional[WorkflowAdapter] = None
    notification: Optional[NotificationAdapter] = None
    workflow_id: Optional[str] = None

    @classmethod
    def from_configs(cls, configs: Optional[IntegrationConfigs]) -> "Destinations":
        """Build adapters through the provider registry (UnsupportedProviderError for unknown providers)"""
        if configs is None:
            return cls()
        return cls(
            marketplace=build_marketplace_adapter(configs.marketplace) if configs.marketplace else None,
            erp=build_erp_adapter(configs.erp) if configs.erp else None,
            workflow=build_workflow_adapter(configs.workflow) if configs.workflow else None,
            notification=build_notification_adapter(configs.email) if configs.email else None,
            workflow_id=configs.workflow.workflow_id if configs.workflow else None,
        )

    def merged(self, other: "Destinations") -> "Destinations":
        """Adapters of ``other`` take precedence; gaps are filled from self"""
        return Destinations(
            marketplace=other.marketplace or self.marketplace,
            erp=other.erp or self.erp,
            workflow=other.workflow or self.workflow,
            notification=other.notification or self.notification,
            workflow_id=other.workflow_id or self.workflow_id,
        )


@dataclass
class DispatchResult:
    triggered_actions: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    marketplace_pushed: bool = False
    workflow_triggered: bool = False
    tracking_number: Optional[str] = None
    history_entry: Optional[StatusHistoryEntry] = None

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass
class _BranchOutcome:
    destination: str
    label: Optional[str] = None
    error: Optional[str] = None
    tracking_number: Optional[str] = None


class SyncOrchestrator:
    """
    Propagates a status change to marketplace, ERP, workflow and notification.

    A destination runs when its flag is set and its adapter is wired. Branches
    run concurrently (bounded by SYNC_MAX_CONCURRENCY), each adapter call under
    ADAPTER_TIMEOUT_SECONDS, and results are merged in DESTINATION_ORDER.
    """

    def __init__(self, ledger: StatusHistoryLedger, destinations: Optional[Destinations] = None):
        self.ledger = ledger
        self.destinations = destinations or Destinations()

    async def dispatch(
        self,
        order: Order,
        new_status: OrderStatus,
        flags: DestinationFlags,
        *,
        previous_status: Optional[OrderStatus] = None,
        actor: str = "status-trigger",
        reason: Optional[str] = None,
    ) -> DispatchResult:
        new_status = coerce_status(new_status)
        old_status = previous_status or order.status
        logger.info(
            f"Dispatching status update for order {order.order_number}: "
            f"{old_status.value} -> {new_status.value}"
        )

        semaphore = asyncio.Semaphore(max(1, settings.SYNC_MAX_CONCURRENCY))
        branches = []
        for destination in DESTINATION_ORDER:
            runner = self._branch_runner(destination, flags)
            if runner is None:
                continue
            branches.append(self._guarded(semaphore, destination, runner(order, new_status, reason)))

        outcomes = await asyncio.gather(*branches)

        result = DispatchResult()
        for outcome in outcomes:
            if outcome.error:
                result.errors.append(outcome.error)
                continue
            if outcome.label is None:
                continue
            result.triggered_actions.append(outcome.label)
            if outcome.destination == "marketplace":
                result.marketplace_pushed = True
                result.tracking_number = outcome.tracking_number
            elif outcome.destination == "workflow":
                result.workflow_triggered = True

        entry = StatusHistoryEntry(
            order_id=order.id,
            tenant_id=order.tenant_id,
            old_status=old_status,
            new_status=new_status,
            note=f"Status updated with triggers: {', '.join(result.triggered_actions) or 'none'}",
            changed_by=actor,
        )
        try:
            result.history_entry = self.ledger.append(entry)
        except PersistenceError as e:
            result.errors.append(f"history failed: {e.message}")

        logger.info(
            f"Dispatch completed for {order.order_number}: "
            f"{len(result.triggered_actions)} actions, {len(result.errors)} errors"
        )
        return result

    def _branch_runner(self, destination: str, flags: DestinationFlags):
        """Branch coroutine factory, or None when the destination is disabled or not wired"""
        if destination == "marketplace" and flags.update_marketplace and self.destinations.marketplace:
            return self._marketplace_branch
        if destination == "erp" and flags.update_erp and self.destinations.erp:
            return self._erp_branch
        if destination == "workflow" and flags.trigger_workflow and self.destinations.workflow:
            return self._workflow_branch
        if destination == "notification" and flags.send_notification and self.destinations.notification:
            return self._notification_branch
        return None

    async def _guarded(self, semaphore: asyncio.Semaphore, destination: str, branch) -> _BranchOutcome:
        async with semaphore:
            try:
                return await branch
            except OrderBridgeError as e:
                message = str(e) if e.message.startswith(f"{destination} failed:") else f"{destination} failed: {e.message}"
                logger.error(f"Dispatch {message}")
                return _BranchOutcome(destination=destination, error=message)
            except Exception as e:
                logger.exception(f"Unexpected error in {destination} dispatch")
                return _BranchOutcome(destination=destination, error=f"{destination} failed: {e}")

    # ========== Destination branches ==========

    async def _marketplace_branch(self, order: Order, status: OrderStatus, reason: Optional[str]) -> _BranchOutcome:
        pushed = await push_status_to_marketplace(
            self.destinations.marketplace,
            order,
            status,
            reason=reason or "Status updated from internal system",
        )
        return _BranchOutcome(
            destination="marketplace",
            label=pushed.label,
            tracking_number=pushed.tracking_number,
        )

    async def _erp_branch(self, order: Order, status: OrderStatus, reason: Optional[str]) -> _BranchOutcome:
        if not order.erp_sale_order_id:
            raise ValidationError(f"Order {order.order_number} is not linked to ERP")

        state = erp_state_for(status)
        if state is None:
            logger.debug(f"No ERP state for status {status.value}")
            return _BranchOutcome(destination="erp")

        await call_adapter("erp", self.destinations.erp.update_sale_order(order.erp_sale_order_id, {"state": state}))
        return _BranchOutcome(destination="erp", label=f"ERP sale order {order.erp_sale_order_id} set to {state}")

    async def _workflow_branch(self, order: Order, status: OrderStatus, reason: Optional[str]) -> _BranchOutcome:
        adapter = self.destinations.workflow
        workflow_id = self.destinations.workflow_id or settings.DEFAULT_WORKFLOW_ID

        await call_adapter("workflow", adapter.test_connection())
        await call_adapter("workflow", adapter.trigger_workflow(workflow_id, self.workflow_payload(order, status)))
        return _BranchOutcome(destination="workflow", label=f"Workflow {workflow_id} triggered")

    async def _notification_branch(self, order: Order, status: OrderStatus, reason: Optional[str]) -> _BranchOutcome:
        adapter = self.destinations.notification

        await call_adapter("notification", adapter.test_connection())
        await call_adapter("notification", adapter.send_order_status_update_email(order, status))
        return _BranchOutcome(destination="notification", label="Email notification sent")

    @staticmethod
    def workflow_payload(order: Order, status: OrderStatus) -> dict:
        return {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": status.value,
            "customer_email": order.customer.email,
            "customer_name": order.customer.name,
            "total_amount": order.formatted_total(),
            "status_change_time": utcnow().isoformat(),
        }
