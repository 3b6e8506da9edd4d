"""
Sync Log Model - Track reconciliation and import run history
"""
from sqlalchemy import Column, String, DateTime, JSON, Uuid
import enum
from datetime import datetime

from orderbridge.core import Base
from .base import UUIDMixin


class SyncStatus(str, enum.Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncLog(Base, UUIDMixin):
    """Log of reconciliation and order import runs"""
    __tablename__ = "sync_log"

    started_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True))
    status = Column(String(20), default=SyncStatus.RUNNING.value, nullable=False)
    sync_type = Column(String(20), default="reconcile", nullable=False)  # reconcile, import

    tenant_id = Column(String(64), index=True)
    connection_id = Column(Uuid(as_uuid=True))
    task_id = Column(String(100))
    policy = Column(String(30))

    # Stats JSON: {"from_remote": 3, "to_remote": 1, "conflicts": 4, "errors": 0}
    stats = Column(JSON, default=dict)

    # Error message if failed
    error_message = Column(String(500))

    def mark_completed(self, status: SyncStatus, stats: dict, error_message: str = None):
        self.status = status.value
        self.completed_at = datetime.utcnow()
        self.stats = stats
        self.error_message = error_message[:500] if error_message else None
