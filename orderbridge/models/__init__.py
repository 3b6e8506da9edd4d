from .base import TimestampMixin, UUIDMixin
from .integration import ChannelConnection
from .order import OrderRecord, OrderItemRecord
from .status_history import OrderStatusHistory
from .sync_log import SyncLog, SyncStatus

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Integration
    "ChannelConnection",
    # Order
    "OrderRecord", "OrderItemRecord",
    # History
    "OrderStatusHistory",
    # Sync
    "SyncLog", "SyncStatus",
]
