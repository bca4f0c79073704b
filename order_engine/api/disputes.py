from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from order_engine.db.session import get_db
from order_engine.schemas.caller import Caller
from order_engine.schemas.dispute import CommentCreate, CommentOut, DisputeListOut, DisputeOut, DisputeResolve
from order_engine.core.security import get_current_caller, require_admin
from order_engine.core.audit_decorator import audit_log
from order_engine.core.rate_limit import check_rate_limit
from order_engine.core.enums import AuditAction, DisputeStatus
from order_engine.core.response_builders import (
    build_comment_response,
    build_comment_response_list,
    build_dispute_list_response,
    build_dispute_response,
)
from order_engine.services import disputes

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.get("/", response_model=DisputeListOut)
async def list_disputes(
    status: Optional[DisputeStatus] = Query(None),
    order_id: Optional[int] = Query(None),
    client_id: Optional[int] = Query(None),
    freelancer_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Parties see their own disputes; admins get filters and status counts."""
    if caller.is_admin:
        items, metrics = await disputes.admin_list_disputes(
            db, caller, status, order_id, client_id, freelancer_id, search, limit, offset
        )
        return build_dispute_list_response(items, metrics)
    return build_dispute_list_response(await disputes.list_disputes(db, caller, status))


@router.get("/{dispute_id}", response_model=DisputeOut)
async def get_dispute(
    dispute_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_dispute_response(await disputes.get_dispute(db, caller, dispute_id))


@router.get("/{dispute_id}/comments", response_model=List[CommentOut])
async def list_comments(
    dispute_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_comment_response_list(await disputes.list_comments(db, caller, dispute_id))


@router.post("/{dispute_id}/comments", response_model=CommentOut)
@audit_log(AuditAction.COMMENT_DISPUTE)
async def add_comment(
    dispute_id: int,
    payload: CommentCreate,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    comment = await disputes.add_comment(db, caller, dispute_id, payload.content, payload.attachments)
    return build_comment_response(comment)


@router.post("/{dispute_id}/resolve", response_model=DisputeOut)
@audit_log(AuditAction.RESOLVE_DISPUTE)
async def resolve_dispute(
    dispute_id: int,
    payload: DisputeResolve,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_admin),
):
    dispute, _ = await disputes.resolve_dispute(
        db, caller, dispute_id, payload.status, payload.admin_resolution, payload.order_action
    )
    return build_dispute_response(dispute)
