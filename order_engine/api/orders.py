from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from order_engine.db.session import get_db
from order_engine.schemas.caller import Caller
from order_engine.schemas.dispute import DisputeCreate, DisputeOut
from order_engine.schemas.order import (
    CancelRequest,
    ContractOut,
    DeliverableOut,
    DeliveryPayload,
    OrderEventOut,
    OrderOut,
    RejectRequest,
    RevisionRequest,
)
from order_engine.schemas.review import ReviewEligibility
from order_engine.core.security import get_current_caller
from order_engine.core.audit_decorator import audit_log
from order_engine.core.rate_limit import check_rate_limit
from order_engine.core.enums import AuditAction, OrderStatus
from order_engine.core.response_builders import (
    build_contract_response,
    build_deliverable_response,
    build_deliverable_response_list,
    build_dispute_response,
    build_event_response_list,
    build_order_response,
    build_order_response_list,
)
from order_engine.services import contracts, disputes, lifecycle, reviews

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/", response_model=List[OrderOut])
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    service_id: Optional[int] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    orders = await lifecycle.list_orders(db, caller, status, service_id, limit, offset)
    return build_order_response_list(orders)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_order_response(await lifecycle.get_order(db, caller, order_id))


@router.get("/{order_id}/contract", response_model=ContractOut)
async def get_contract(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_contract_response(await contracts.get_by_order_id(db, caller, order_id))


@router.get("/{order_id}/events", response_model=List[OrderEventOut])
async def list_events(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_event_response_list(await lifecycle.list_events(db, caller, order_id))


@router.get("/{order_id}/deliverables", response_model=List[DeliverableOut])
async def list_deliverables(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_deliverable_response_list(await lifecycle.list_deliverables(db, caller, order_id))


@router.post("/{order_id}/start", response_model=OrderOut)
@audit_log(AuditAction.START_ORDER)
async def start_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    return build_order_response(await lifecycle.start_order(db, caller, order_id))


@router.post("/{order_id}/deliver", response_model=DeliverableOut)
@audit_log(AuditAction.SUBMIT_DELIVERY)
async def submit_delivery(
    order_id: int,
    payload: DeliveryPayload,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    _, deliverable = await lifecycle.submit_delivery(
        db, caller, order_id, type=payload.type, file_url=payload.file_url, message=payload.message
    )
    return build_deliverable_response(deliverable)


@router.post("/{order_id}/revision", response_model=OrderOut)
@audit_log(AuditAction.REQUEST_REVISION)
async def request_revision(
    order_id: int,
    payload: RevisionRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    return build_order_response(await lifecycle.request_revision(db, caller, order_id, payload.note))


@router.post("/{order_id}/complete", response_model=OrderOut)
@audit_log(AuditAction.ACCEPT_DELIVERY)
async def accept_delivery(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    return build_order_response(await lifecycle.accept_delivery(db, caller, order_id))


@router.post("/{order_id}/reject", response_model=OrderOut)
@audit_log(AuditAction.REJECT_ORDER)
async def reject_order(
    order_id: int,
    payload: RejectRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    return build_order_response(await lifecycle.reject_order(db, caller, order_id, payload.reason))


@router.post("/{order_id}/cancel", response_model=OrderOut)
@audit_log(AuditAction.CANCEL_ORDER)
async def cancel_order(
    order_id: int,
    payload: CancelRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    return build_order_response(await lifecycle.cancel_order(db, caller, order_id, payload.reason))


@router.post("/{order_id}/dispute", response_model=DisputeOut)
@audit_log(AuditAction.OPEN_DISPUTE)
async def open_dispute(
    order_id: int,
    payload: DisputeCreate,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    dispute = await disputes.open_dispute(
        db, caller, order_id, payload.reason, payload.description, payload.attachments
    )
    return build_dispute_response(dispute)


@router.get("/{order_id}/can-review", response_model=ReviewEligibility)
async def can_review(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return await reviews.can_review(db, caller, order_id)
