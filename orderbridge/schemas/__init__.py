# Pydantic Schemas
from .integration import (
    ChannelConnectionCreate,
    ChannelConnectionResponse,
    ChannelConnectionUpdate,
    DestinationFlags,
    EmailConfig,
    ERPCredentials,
    IntegrationConfigs,
    MarketplaceCredentials,
    WorkflowConfig,
)
from .order import (
    CancelRequest,
    HistoryEntryResponse,
    NoteCreate,
    OrderCreate,
    OrderResponse,
    PaymentStatusUpdate,
    ProvisionRequest,
    ProvisionResponse,
    RefundRequest,
    StatusChangeResponse,
    StatusUpdateRequest,
    TriggerRequest,
)
from .sync import (
    ReconcileRequest,
    ReconcileResponse,
    ScheduledTaskCreate,
    ScheduledTaskResponse,
    SyncLogResponse,
)
