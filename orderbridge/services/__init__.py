# Services Package
from .order_repository import OrderRepository
from .status_history import StatusHistoryLedger
from .marketplace_sync import push_status_to_marketplace, resolve_shipment
from .sync_orchestrator import Destinations, DispatchResult, SyncOrchestrator
from .reconciliation_service import (
    ConflictPolicy,
    ConflictRecord,
    ConflictResolver,
    ReconcileResult,
    ReconcileScope,
    SyncError,
    SyncResult,
)
from .provisioning_service import ERPProvisioningFlow, ProvisioningOptions, ProvisioningResult
from .order_service import OrderResult, OrderService, status_triggers

__all__ = [
    "OrderRepository",
    "StatusHistoryLedger",
    "push_status_to_marketplace",
    "resolve_shipment",
    "Destinations",
    "DispatchResult",
    "SyncOrchestrator",
    "ConflictPolicy",
    "ConflictRecord",
    "ConflictResolver",
    "ReconcileResult",
    "ReconcileScope",
    "SyncError",
    "SyncResult",
    "ERPProvisioningFlow",
    "ProvisioningOptions",
    "ProvisioningResult",
    "OrderResult",
    "OrderService",
    "status_triggers",
]
