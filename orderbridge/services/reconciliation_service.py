"""
Reconciliation Service - two-way status sync between internal orders and the marketplace

remote -> internal: fetch each linked order's remote status and resolve
divergence under a ConflictPolicy.
internal -> remote: push orders flagged ``needs_status_push``.
Per-order failures are collected; they never abort the batch.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union
from uuid import UUID
import asyncio
import enum
import logging
import time

from orderbridge.core.config import settings
from orderbridge.core.exceptions import OrderBridgeError, ValidationError
from orderbridge.domain.order import Order, OrderStatus, StatusHistoryEntry
from orderbridge.domain.state_machine import OrderStateMachine
from orderbridge.domain.status_maps import map_remote_status
from orderbridge.integrations.base import MarketplaceAdapter
from orderbridge.schemas.integration import DestinationFlags
from .marketplace_sync import call_adapter, push_status_to_marketplace
from .order_repository import OrderRepository
from .status_history import StatusHistoryLedger
from .sync_orchestrator import Destinations, SyncOrchestrator

logger = logging.getLogger(__name__)

SYNC_ACTOR = "marketplace-sync"


class ConflictPolicy(str, enum.Enum):
    MARKETPLACE_WINS = "marketplace_wins"
    INTERNAL_WINS = "internal_wins"
    MANUAL = "manual"


def coerce_policy(value: Union[str, ConflictPolicy, None]) -> ConflictPolicy:
    try:
        return ConflictPolicy(value or settings.DEFAULT_CONFLICT_POLICY)
    except ValueError:
        raise ValidationError(f"Unknown conflict policy: {value}")


@dataclass(frozen=True)
class ConflictRecord:
    order_id: UUID
    internal_status: OrderStatus
    remote_status: str
    mapped_status: OrderStatus
    resolution: ConflictPolicy
    note: str = ""


@dataclass
class SyncError:
    item_id: str
    error_message: str


@dataclass
class SyncResult:
    """Counters for one reconciliation pass"""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[SyncError] = field(default_factory=list)
    duration_seconds: float = 0.0

    def add_error(self, item_id: str, message: str):
        self.failed += 1
        self.errors.append(SyncError(item_id=item_id, error_message=message))


@dataclass
class ReconcileScope:
    tenant_id: str
    connection_id: Optional[UUID] = None
    sync_from_remote: bool = True
    sync_to_remote: bool = True
    trigger_workflow: bool = False
    send_notification: bool = False
    update_erp: bool = False


@dataclass
class ReconcileResult:
    success: bool
    from_remote_count: int = 0
    to_remote_count: int = 0
    conflicts: List[ConflictRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    from_remote: SyncResult = field(default_factory=SyncResult)
    to_remote: SyncResult = field(default_factory=SyncResult)

    def stats(self) -> dict:
        """Summary stored on the sync log"""
        return {
            "from_remote_count": self.from_remote_count,
            "to_remote_count": self.to_remote_count,
            "conflicts": len(self.conflicts),
            "errors": len(self.errors),
            "from_remote": {
                "processed": self.from_remote.processed,
                "succeeded": self.from_remote.succeeded,
                "failed": self.from_remote.failed,
                "skipped": self.from_remote.skipped,
            },
            "to_remote": {
                "processed": self.to_remote.processed,
                "succeeded": self.to_remote.succeeded,
                "failed": self.to_remote.failed,
                "skipped": self.to_remote.skipped,
            },
        }


class ConflictResolver:
    """
    Reconciles one tenant's marketplace-linked orders.

    ``destinations`` wires the workflow / notification / ERP adapters used after
    a marketplace-driven correction; the marketplace itself is never re-notified
    of a status it reported.
    """

    def __init__(self, db, marketplace: MarketplaceAdapter, destinations: Optional[Destinations] = None):
        self.db = db
        self.marketplace = marketplace
        self.repository = OrderRepository(db)
        self.ledger = StatusHistoryLedger(db)

        downstream = destinations or Destinations()
        self.orchestrator = SyncOrchestrator(
            self.ledger,
            Destinations(
                erp=downstream.erp,
                workflow=downstream.workflow,
                notification=downstream.notification,
                workflow_id=downstream.workflow_id,
            ),
        )

    async def reconcile(self, scope: ReconcileScope, policy: Union[str, ConflictPolicy, None] = None) -> ReconcileResult:
        policy = coerce_policy(policy)
        result = ReconcileResult(success=True)
        logger.info(f"Starting reconciliation for tenant {scope.tenant_id} (policy={policy.value})")

        if scope.sync_from_remote:
            try:
                await self._sync_from_remote(scope, policy, result)
            except OrderBridgeError as e:
                logger.error(f"Remote to internal sync failed: {e}")
                result.success = False
                result.errors.append(f"Remote to internal sync failed: {e.message}")

        if scope.sync_to_remote:
            try:
                await self._sync_to_remote(scope, result)
            except OrderBridgeError as e:
                logger.error(f"Internal to remote sync failed: {e}")
                result.success = False
                result.errors.append(f"Internal to remote sync failed: {e.message}")

        logger.info(
            f"Reconciliation completed for tenant {scope.tenant_id}: "
            f"{result.from_remote_count} from remote, {result.to_remote_count} to remote, "
            f"{len(result.conflicts)} conflicts, {len(result.errors)} errors"
        )
        return result

    # ========== Remote -> internal ==========

    async def _fetch_remote_statuses(self, orders: List[Order]) -> List[Tuple[Order, Optional[str], Optional[str]]]:
        """(order, raw remote status, error) per order; fetched concurrently"""
        semaphore = asyncio.Semaphore(max(1, settings.SYNC_MAX_CONCURRENCY))

        async def fetch(order: Order):
            async with semaphore:
                try:
                    fetched = await call_adapter("marketplace", self.marketplace.get_order_status(order.external_order_id))
                    return order, fetched.data, None
                except OrderBridgeError as e:
                    return order, None, e.message
                except Exception as e:
                    logger.exception(f"Unexpected error fetching remote status of {order.order_number}")
                    return order, None, str(e)

        return await asyncio.gather(*(fetch(order) for order in orders))

    async def _sync_from_remote(self, scope: ReconcileScope, policy: ConflictPolicy, result: ReconcileResult):
        started = time.monotonic()
        pass_result = result.from_remote

        orders = []
        for order in self.repository.list_linked_orders(scope.tenant_id, scope.connection_id):
            if order.needs_status_push:
                # Changed locally since the last push; the push pass owns it
                logger.debug(f"Skipping {order.order_number}: local status {order.status.value} not pushed yet")
                pass_result.processed += 1
                pass_result.skipped += 1
                continue
            orders.append(order)
        fetched = await self._fetch_remote_statuses(orders)

        # Corrections are applied one order at a time
        for order, remote_status, fetch_error in fetched:
            pass_result.processed += 1
            if fetch_error:
                message = f"Failed to sync order {order.order_number}: {fetch_error}"
                pass_result.add_error(str(order.id), message)
                result.errors.append(message)
                continue
            if not remote_status:
                pass_result.succeeded += 1
                continue

            mapped = map_remote_status(str(remote_status))
            if mapped == order.status:
                pass_result.succeeded += 1
                continue

            try:
                conflict, corrected = await self._resolve(order, str(remote_status), mapped, policy, scope, result)
            except OrderBridgeError as e:
                message = f"Failed to sync order {order.order_number}: {e.message}"
                pass_result.add_error(str(order.id), message)
                result.errors.append(message)
                self.repository.rollback()
                continue
            except Exception as e:
                logger.exception(f"Unexpected error reconciling order {order.order_number}")
                message = f"Failed to sync order {order.order_number}: {e}"
                pass_result.add_error(str(order.id), message)
                result.errors.append(message)
                self.repository.rollback()
                continue

            result.conflicts.append(conflict)
            if corrected:
                result.from_remote_count += 1
            if conflict.resolution == ConflictPolicy.MANUAL and policy != ConflictPolicy.MANUAL:
                # Escalated: the policy could not be applied
                pass_result.add_error(str(order.id), conflict.note)
                result.errors.append(f"Order {order.order_number}: {conflict.note}")
            else:
                pass_result.succeeded += 1

        pass_result.duration_seconds = time.monotonic() - started

    async def _resolve(
        self,
        order: Order,
        remote_status: str,
        mapped: OrderStatus,
        policy: ConflictPolicy,
        scope: ReconcileScope,
        result: ReconcileResult,
    ) -> Tuple[ConflictRecord, bool]:
        """Apply ``policy`` to one diverging order; returns the conflict and whether the internal status changed"""
        logger.warning(
            f"Status conflict on {order.order_number}: internal={order.status.value} "
            f"remote={remote_status} ({mapped.value})"
        )

        def record(resolution: ConflictPolicy, note: str) -> ConflictRecord:
            return ConflictRecord(
                order_id=order.id,
                internal_status=order.status,
                remote_status=remote_status,
                mapped_status=mapped,
                resolution=resolution,
                note=note,
            )

        if policy == ConflictPolicy.MANUAL:
            return record(ConflictPolicy.MANUAL, "Left for manual review"), False

        if policy == ConflictPolicy.MARKETPLACE_WINS:
            if not OrderStateMachine.is_legal_transition(order.status, mapped):
                return record(
                    ConflictPolicy.MANUAL,
                    f"Remote status {remote_status} is not reachable from {order.status.value}; left for manual review",
                ), False

            await self._adopt_remote_status(order, remote_status, mapped, scope, result)
            return record(ConflictPolicy.MARKETPLACE_WINS, f"Internal status set to {mapped.value}"), True

        pushed = await push_status_to_marketplace(
            self.marketplace, order, order.status, reason="Status synced from internal system"
        )
        if pushed.action is None:
            return record(
                ConflictPolicy.INTERNAL_WINS,
                f"No marketplace action for {order.status.value}; remote status unchanged",
            ), False

        self.repository.save(order.evolve(needs_status_push=False), commit=False)
        self.ledger.append(StatusHistoryEntry(
            order_id=order.id,
            tenant_id=order.tenant_id,
            old_status=order.status,
            new_status=order.status,
            note=f"Marketplace status {remote_status} overridden: {pushed.label}",
            changed_by=SYNC_ACTOR,
        ))
        return record(ConflictPolicy.INTERNAL_WINS, pushed.label), False

    async def _adopt_remote_status(
        self,
        order: Order,
        remote_status: str,
        mapped: OrderStatus,
        scope: ReconcileScope,
        result: ReconcileResult,
    ):
        updated, note = OrderStateMachine.apply_transition(
            order, mapped, note=f"Status synced from marketplace: {remote_status}"
        )
        updated = updated.evolve(needs_status_push=False)

        self.repository.save(updated, commit=False)
        self.ledger.append(StatusHistoryEntry(
            order_id=order.id,
            tenant_id=order.tenant_id,
            old_status=order.status,
            new_status=mapped,
            note=note,
            changed_by=SYNC_ACTOR,
        ))

        flags = DestinationFlags(
            trigger_workflow=scope.trigger_workflow,
            send_notification=scope.send_notification,
            update_erp=scope.update_erp,
        )
        if not (flags.trigger_workflow or flags.send_notification or flags.update_erp):
            return

        dispatched = await self.orchestrator.dispatch(
            updated, mapped, flags, previous_status=order.status, actor=SYNC_ACTOR
        )
        result.errors.extend(f"Order {order.order_number}: {error}" for error in dispatched.errors)
        if dispatched.workflow_triggered and not updated.workflow_triggered:
            self.repository.save(updated.evolve(workflow_triggered=True))

    # ========== Internal -> remote ==========

    async def _sync_to_remote(self, scope: ReconcileScope, result: ReconcileResult):
        started = time.monotonic()
        pass_result = result.to_remote

        for order in self.repository.list_needing_status_push(scope.tenant_id, scope.connection_id):
            pass_result.processed += 1
            try:
                pushed = await push_status_to_marketplace(
                    self.marketplace, order, order.status, reason="Status synced from internal system"
                )
                self.repository.save(order.evolve(needs_status_push=False))
            except OrderBridgeError as e:
                message = f"Failed to sync order {order.order_number} to marketplace: {e.message}"
                pass_result.add_error(str(order.id), message)
                result.errors.append(message)
                continue
            except Exception as e:
                logger.exception(f"Unexpected error pushing order {order.order_number}")
                message = f"Failed to sync order {order.order_number} to marketplace: {e}"
                pass_result.add_error(str(order.id), message)
                result.errors.append(message)
                continue

            if pushed.action is None:
                pass_result.skipped += 1
                logger.info(f"No marketplace action for {order.order_number} ({order.status.value}), flag cleared")
                continue

            pass_result.succeeded += 1
            result.to_remote_count += 1
            logger.info(f"Pushed {order.order_number} to marketplace ({pushed.action})")

        pass_result.duration_seconds = time.monotonic() - started
