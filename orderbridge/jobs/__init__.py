# Jobs Package - Scheduled background tasks
from .reconcile_scheduler import ReconcileScheduler, ScheduledTask, reconcile_connection

__all__ = ["ReconcileScheduler", "ScheduledTask", "reconcile_connection"]
