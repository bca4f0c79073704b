"""Dispute resolution.

Opening a dispute freezes the order in DISPUTED; only an admin resolution
that carries an order action can move it out again.
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core.auth_utils import check_admin, check_not_found, check_party
from order_engine.core.enums import DisputeStatus, OrderAction, OrderEventType, OrderStatus, Signal, UserRole
from order_engine.core.exceptions import Conflict, DisputeAlreadyOpen, InvalidState, ResolutionRequired
from order_engine.core.metrics import disputes_total
from order_engine.db.session import atomic
from order_engine.models.base import utcnow
from order_engine.models.dispute import Dispute, DisputeComment
from order_engine.models.order import Order
from order_engine.schemas.caller import Caller
from order_engine.services import events, lifecycle, signals

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (DisputeStatus.OPEN, DisputeStatus.IN_REVIEW)
CLOSING_STATUSES = (DisputeStatus.RESOLVED, DisputeStatus.CLOSED)

DISPUTABLE_ORDER_STATUSES = (
    OrderStatus.IN_PROGRESS,
    OrderStatus.DELIVERED,
    OrderStatus.REVISION_REQUESTED,
)

# SPLIT settles like PAY_FREELANCER until split settlement exists;
# the chosen action is kept in the DISPUTE_RESOLVED event.
ORDER_ACTION_OUTCOME: Dict[OrderAction, Optional[OrderStatus]] = {
    OrderAction.REFUND_CLIENT: OrderStatus.CANCELLED,
    OrderAction.PAY_FREELANCER: OrderStatus.COMPLETED,
    OrderAction.SPLIT: OrderStatus.COMPLETED,
    OrderAction.NONE: None,
}


def is_active(dispute: Dispute) -> bool:
    return dispute.status in ACTIVE_STATUSES


async def _active_dispute(db: AsyncSession, order_id: int) -> Optional[Dispute]:
    res = await db.execute(
        select(Dispute)
        .where(Dispute.order_id == order_id, Dispute.status.in_(ACTIVE_STATUSES))
        .limit(1)
    )
    return res.scalars().first()


async def _load_dispute(db: AsyncSession, dispute_id: int, lock: bool = False) -> Dispute:
    q = select(Dispute).where(Dispute.id == dispute_id).execution_options(populate_existing=True)
    if lock:
        q = q.with_for_update()
    res = await db.execute(q)
    dispute = res.scalars().first()
    check_not_found(dispute, "Dispute", dispute_id)
    return dispute


async def open_dispute(
    db: AsyncSession,
    caller: Caller,
    order_id: int,
    reason: str,
    description: str,
    attachments: Optional[List[str]] = None,
) -> Dispute:
    async with atomic(db):
        order = await lifecycle.load_order(db, order_id, lock=True)
        check_party(order, caller, "Order", allow_admin=False)

        if await _active_dispute(db, order.id):
            raise DisputeAlreadyOpen()

        previous = order.status
        if previous in DISPUTABLE_ORDER_STATUSES:
            await lifecycle.apply_status(db, order, OrderStatus.DISPUTED)
        elif previous == OrderStatus.DISPUTED:
            # earlier dispute closed without settling the order
            await lifecycle.claim_order(db, order)
            if await _active_dispute(db, order.id):
                raise DisputeAlreadyOpen()
        else:
            raise InvalidState(f"Cannot open a dispute on an order that is {previous.value}")

        dispute = Dispute(
            order_id=order.id,
            client_id=order.client_id,
            freelancer_id=order.freelancer_id,
            opened_by=caller.id,
            reason=reason,
            description=description,
            attachments=list(attachments or []),
            status=DisputeStatus.OPEN,
        )
        db.add(dispute)
        await db.flush()

        await events.record_event(
            db, order.id, caller.id, OrderEventType.DISPUTE_OPENED,
            f"Dispute opened: {reason}",
            {"dispute_id": dispute.id, "reason": reason, "previous_status": previous.value},
        )

    disputes_total.labels(action="opened").inc()
    logger.info(f"Dispute {dispute.id} opened on order {order.order_number} by user {caller.id}")
    signals.emit(Signal.DISPUTE_OPENED, {
        "dispute_id": dispute.id,
        "order_id": order.id,
        "opened_by": caller.id,
        "reason": reason,
    })
    if previous != order.status:
        signals.emit_status_change(order, previous, caller.id)
    return dispute


async def resolve_dispute(
    db: AsyncSession,
    caller: Caller,
    dispute_id: int,
    new_status: DisputeStatus,
    admin_resolution: Optional[str] = None,
    order_action: OrderAction = OrderAction.NONE,
) -> Tuple[Dispute, Order]:
    """Move a dispute forward and, for closing decisions, settle the order.

    IN_REVIEW only acknowledges the dispute. RESOLVED and CLOSED need a written
    resolution and apply ``order_action`` to the order.
    """
    check_admin(caller)
    resolution = (admin_resolution or "").strip() or None

    if new_status == DisputeStatus.OPEN:
        raise InvalidState("A dispute cannot be moved back to open")
    if new_status in CLOSING_STATUSES and not resolution:
        raise ResolutionRequired()
    if new_status == DisputeStatus.IN_REVIEW and order_action != OrderAction.NONE:
        raise InvalidState("An order action can only be applied when resolving or closing a dispute")

    async with atomic(db):
        dispute = await _load_dispute(db, dispute_id, lock=True)
        if not is_active(dispute):
            raise InvalidState(f"Dispute is already {dispute.status.value}")
        if dispute.status == new_status:
            raise InvalidState(f"Dispute is already {new_status.value}")

        order = await lifecycle.load_order(db, dispute.order_id, lock=True)

        now = utcnow()
        values = {"status": new_status}
        if resolution:
            values["admin_resolution"] = resolution
        if new_status in CLOSING_STATUSES:
            values["resolved_by"] = caller.id
            values["resolved_at"] = now

        result = await db.execute(
            update(Dispute)
            .where(Dispute.id == dispute.id, Dispute.status == dispute.status)
            .values(**values)
        )
        if result.rowcount != 1:
            raise Conflict(f"Dispute {dispute.id} was modified concurrently")
        for field, value in values.items():
            setattr(dispute, field, value)

        previous = order.status
        target = ORDER_ACTION_OUTCOME[order_action]
        if target is not None:
            if order.status != OrderStatus.DISPUTED:
                raise InvalidState(f"Order is {order.status.value}, expected disputed")
            extra = {"completed_at": now} if target == OrderStatus.COMPLETED else {}
            await lifecycle.apply_status(db, order, target, **extra)

        if new_status == DisputeStatus.IN_REVIEW:
            await events.record_event(
                db, order.id, caller.id, OrderEventType.DISPUTE_IN_REVIEW,
                "Dispute is being reviewed by an admin",
                {"dispute_id": dispute.id},
            )
        else:
            await events.record_event(
                db, order.id, caller.id, OrderEventType.DISPUTE_RESOLVED,
                f"Dispute {new_status.value}: {resolution}",
                {
                    "dispute_id": dispute.id,
                    "dispute_status": new_status.value,
                    "order_action": order_action.value,
                    "order_status": order.status.value,
                    "resolved_by": caller.id,
                },
            )

    disputes_total.labels(action=new_status.value).inc()
    logger.info(
        f"Dispute {dispute.id} moved to {new_status.value} by admin {caller.id} "
        f"(order action {order_action.value})"
    )
    if new_status in CLOSING_STATUSES:
        signals.emit(Signal.DISPUTE_RESOLVED, {
            "dispute_id": dispute.id,
            "order_id": order.id,
            "status": new_status.value,
            "order_action": order_action.value,
            "resolved_by": caller.id,
        })
    if previous != order.status:
        signals.emit_status_change(order, previous, caller.id)
    return dispute, order


def _comment_role(dispute: Dispute, caller: Caller) -> UserRole:
    if caller.id == dispute.client_id:
        return UserRole.CLIENT
    if caller.id == dispute.freelancer_id:
        return UserRole.FREELANCER
    return UserRole.ADMIN


async def add_comment(
    db: AsyncSession,
    caller: Caller,
    dispute_id: int,
    content: str,
    attachments: Optional[List[str]] = None,
) -> DisputeComment:
    async with atomic(db):
        dispute = await _load_dispute(db, dispute_id)
        check_party(dispute, caller, "Dispute")
        if not is_active(dispute):
            raise InvalidState(f"Dispute is {dispute.status.value}, comments are closed")

        comment = DisputeComment(
            dispute_id=dispute.id,
            user_id=caller.id,
            role=_comment_role(dispute, caller),
            content=content,
            attachments=list(attachments or []),
        )
        db.add(comment)
        await db.flush()

    disputes_total.labels(action="comment").inc()
    return comment


async def list_comments(db: AsyncSession, caller: Caller, dispute_id: int) -> List[DisputeComment]:
    dispute = await _load_dispute(db, dispute_id)
    check_party(dispute, caller, "Dispute")
    res = await db.execute(
        select(DisputeComment)
        .where(DisputeComment.dispute_id == dispute_id)
        .order_by(DisputeComment.created_at, DisputeComment.id)
    )
    return list(res.scalars().all())


async def get_dispute(db: AsyncSession, caller: Caller, dispute_id: int) -> Dispute:
    dispute = await _load_dispute(db, dispute_id)
    check_party(dispute, caller, "Dispute")
    return dispute


async def list_disputes(
    db: AsyncSession,
    caller: Caller,
    status: Optional[DisputeStatus] = None,
) -> List[Dispute]:
    q = select(Dispute)
    if not caller.is_admin:
        q = q.where(or_(Dispute.client_id == caller.id, Dispute.freelancer_id == caller.id))
    if status:
        q = q.where(Dispute.status == status)
    res = await db.execute(q.order_by(Dispute.created_at.desc(), Dispute.id.desc()))
    return list(res.scalars().all())


async def dispute_metrics(db: AsyncSession) -> Dict[str, int]:
    res = await db.execute(select(Dispute.status, func.count(Dispute.id)).group_by(Dispute.status))
    counts = {status: count for status, count in res.all()}
    return {
        "open": counts.get(DisputeStatus.OPEN, 0),
        "inReview": counts.get(DisputeStatus.IN_REVIEW, 0),
        "resolved": counts.get(DisputeStatus.RESOLVED, 0),
        "closed": counts.get(DisputeStatus.CLOSED, 0),
        "total": sum(counts.values()),
    }


async def admin_list_disputes(
    db: AsyncSession,
    caller: Caller,
    status: Optional[DisputeStatus] = None,
    order_id: Optional[int] = None,
    client_id: Optional[int] = None,
    freelancer_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Dispute], Dict[str, int]]:
    check_admin(caller)

    q = select(Dispute)
    if status:
        q = q.where(Dispute.status == status)
    if order_id:
        q = q.where(Dispute.order_id == order_id)
    if client_id:
        q = q.where(Dispute.client_id == client_id)
    if freelancer_id:
        q = q.where(Dispute.freelancer_id == freelancer_id)
    if search:
        pattern = f"%{search}%"
        q = q.where(or_(Dispute.reason.ilike(pattern), Dispute.description.ilike(pattern)))

    q = q.order_by(Dispute.created_at.desc(), Dispute.id.desc()).limit(limit).offset(offset)
    res = await db.execute(q)
    return list(res.scalars().all()), await dispute_metrics(db)
