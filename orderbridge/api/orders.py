"""
Orders API - lifecycle, history, destination triggers and ERP provisioning
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from orderbridge.core.database import get_db
from orderbridge.domain.order import OrderStatus
from orderbridge.schemas.integration import DestinationFlags
from orderbridge.schemas.order import (
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
from orderbridge.services.order_service import OrderResult, OrderService, status_triggers
from orderbridge.services.sync_orchestrator import Destinations
from .deps import get_destinations, get_tenant_id, raise_for_result

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_service(
    db: Session = Depends(get_db),
    destinations: Optional[Destinations] = Depends(get_destinations),
) -> OrderService:
    return OrderService(db, destinations)


def status_change_response(result: OrderResult) -> StatusChangeResponse:
    raise_for_result(result)
    return StatusChangeResponse(
        success=True,
        order=OrderResponse.from_order(result.order),
        triggered_actions=result.triggered_actions,
        errors=result.errors,
    )


# ===================== ORDERS =====================

@router.get("")
async def list_orders(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    result = service.list_orders(tenant_id, status, page, per_page)
    raise_for_result(result)
    return {
        "orders": [OrderResponse.from_order(o) for o in result.orders],
        "total": result.total,
        "page": page,
        "per_page": per_page,
    }


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    data: OrderCreate,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    result = service.create_order(tenant_id, data)
    raise_for_result(result)
    return OrderResponse.from_order(result.order)


@router.get("/triggers/{status}", response_model=DestinationFlags)
async def get_status_triggers(status: OrderStatus):
    """Default destinations for a status"""
    return status_triggers(status)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    result = service.get_order(tenant_id, order_id)
    raise_for_result(result)
    return OrderResponse.from_order(result.order)


@router.get("/{order_id}/history", response_model=list[HistoryEntryResponse])
async def get_status_history(
    order_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    result = service.get_status_history(tenant_id, order_id)
    raise_for_result(result)
    return [HistoryEntryResponse.from_entry(entry) for entry in result.history]


# ===================== STATUS CHANGES =====================

@router.post("/{order_id}/status", response_model=StatusChangeResponse)
async def update_order_status(
    order_id: UUID,
    data: StatusUpdateRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    return status_change_response(await service.update_order_status(tenant_id, order_id, data))


@router.post("/{order_id}/payment", response_model=StatusChangeResponse)
async def update_payment_status(
    order_id: UUID,
    data: PaymentStatusUpdate,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    return status_change_response(service.update_payment_status(tenant_id, order_id, data))


@router.post("/{order_id}/cancel", response_model=StatusChangeResponse)
async def cancel_order(
    order_id: UUID,
    data: CancelRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    return status_change_response(await service.cancel_order(tenant_id, order_id, data))


@router.post("/{order_id}/refund", response_model=StatusChangeResponse)
async def process_refund(
    order_id: UUID,
    data: RefundRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    return status_change_response(await service.process_refund(tenant_id, order_id, data))


@router.post("/{order_id}/notes", response_model=StatusChangeResponse, status_code=201)
async def add_note(
    order_id: UUID,
    data: NoteCreate,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    return status_change_response(service.add_note(tenant_id, order_id, data))


@router.post("/{order_id}/trigger", response_model=StatusChangeResponse)
async def trigger_status_update(
    order_id: UUID,
    data: TriggerRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    return status_change_response(await service.trigger_status_update(tenant_id, order_id, data))


# ===================== ERP =====================

def provision_response(result: OrderResult) -> ProvisionResponse:
    raise_for_result(result)
    provisioned = result.provisioning
    return ProvisionResponse(
        success=True,
        order=OrderResponse.from_order(result.order),
        partner_id=provisioned.partner_id,
        sale_order_id=provisioned.sale_order_id,
        invoice_id=provisioned.invoice_id,
        delivery_order_id=provisioned.delivery_order_id,
    )


@router.post("/{order_id}/erp/provision", response_model=ProvisionResponse)
async def provision_to_erp(
    order_id: UUID,
    data: ProvisionRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    return provision_response(await service.provision_to_erp(tenant_id, order_id, data))


@router.post("/{order_id}/erp/resume", response_model=ProvisionResponse)
async def resume_erp_provisioning(
    order_id: UUID,
    data: ProvisionRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: OrderService = Depends(get_order_service),
):
    return provision_response(await service.resume_erp_provisioning(tenant_id, order_id, data))
