"""Order state machine.

    PENDING_ACCEPTANCE -> IN_PROGRESS -> DELIVERED -> COMPLETED
                                         DELIVERED <-> REVISION_REQUESTED
    IN_PROGRESS | DELIVERED | REVISION_REQUESTED -> DISPUTED
    DISPUTED -> COMPLETED | CANCELLED          (dispute resolution only)
    any non-terminal, non-disputed state -> CANCELLED

Every status write is a compare-and-set on the status that was read, so two
callers racing on the same order cannot both succeed: the loser gets
``Conflict`` and the whole unit of work is rolled back.
"""
import logging
from datetime import timedelta
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core.auth_utils import check_client, check_freelancer, check_not_found, check_party
from order_engine.core.enums import DeliverableType, OrderEventType, OrderStatus, UserRole
from order_engine.core.exceptions import Conflict, InvalidState, RevisionLimitExceeded
from order_engine.core.metrics import order_transitions
from order_engine.db.session import atomic
from order_engine.models.base import utcnow
from order_engine.models.order import Order, OrderDeliverable
from order_engine.models.order_event import OrderEvent
from order_engine.schemas.caller import Caller
from order_engine.services import contracts, events, signals

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING_ACCEPTANCE: {OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED},
    OrderStatus.IN_PROGRESS: {OrderStatus.DELIVERED, OrderStatus.DISPUTED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {
        OrderStatus.COMPLETED,
        OrderStatus.REVISION_REQUESTED,
        OrderStatus.DISPUTED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.REVISION_REQUESTED: {OrderStatus.DELIVERED, OrderStatus.DISPUTED, OrderStatus.CANCELLED},
    OrderStatus.DISPUTED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def validate_transition(current: OrderStatus, target: OrderStatus) -> None:
    if target not in TRANSITIONS[current]:
        allowed = ", ".join(sorted(s.value for s in TRANSITIONS[current])) or "none"
        raise InvalidState(
            f"Invalid order transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: [{allowed}]"
        )


async def load_order(db: AsyncSession, order_id: int, lock: bool = False) -> Order:
    q = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    if lock:
        q = q.with_for_update()
    res = await db.execute(q)
    order = res.scalars().first()
    check_not_found(order, "Order", order_id)
    return order


async def claim_order(db: AsyncSession, order: Order) -> None:
    """Take the per-order write slot, failing if the status moved since it was read."""
    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == order.status)
        .values(updated_at=utcnow())
    )
    if result.rowcount != 1:
        raise Conflict(f"Order {order.id} was modified concurrently")


async def apply_status(db: AsyncSession, order: Order, target: OrderStatus, **values) -> OrderStatus:
    """Validate and write a status change together with the contract mirror.

    Returns the previous status.
    """
    previous = order.status
    validate_transition(previous, target)

    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == previous)
        .values(status=target, **values)
    )
    if result.rowcount != 1:
        raise Conflict(f"Order {order.id} was modified concurrently")

    order.status = target
    for field, value in values.items():
        setattr(order, field, value)
    await db.flush()

    await contracts.mirror_order_status(db, order)
    order_transitions.labels(from_status=previous.value, to_status=target.value).inc()
    logger.info(f"Order {order.order_number} moved {previous.value} -> {target.value}")
    return previous


def _ensure_not_disputed(order: Order) -> None:
    if order.status == OrderStatus.DISPUTED:
        raise InvalidState("Order is under dispute; lifecycle actions are frozen until it is resolved")


async def _latest_deliverable(db: AsyncSession, order_id: int) -> Optional[OrderDeliverable]:
    res = await db.execute(
        select(OrderDeliverable)
        .where(OrderDeliverable.order_id == order_id)
        .order_by(OrderDeliverable.delivered_at.desc(), OrderDeliverable.id.desc())
        .limit(1)
    )
    return res.scalars().first()


async def start_order(db: AsyncSession, caller: Caller, order_id: int) -> Order:
    """Freelancer confirms an order that was created awaiting acceptance."""
    async with atomic(db):
        order = await load_order(db, order_id, lock=True)
        check_freelancer(order, caller, "Order")
        _ensure_not_disputed(order)

        now = utcnow()
        delivery_date = now + timedelta(days=order.delivery_time_days)
        previous = await apply_status(db, order, OrderStatus.IN_PROGRESS, delivery_date=delivery_date)
        await contracts.record_freelancer_acceptance(db, order, now)
        await events.record_event(
            db, order.id, caller.id, OrderEventType.ORDER_STARTED,
            "Order accepted by freelancer, work started",
            {"delivery_date": delivery_date.isoformat()},
        )

    signals.emit_status_change(order, previous, caller.id)
    return order


async def reject_order(db: AsyncSession, caller: Caller, order_id: int, reason: str) -> Order:
    """Client (or an admin) declines an order that is still awaiting acceptance."""
    async with atomic(db):
        order = await load_order(db, order_id, lock=True)
        if caller.role != UserRole.ADMIN:
            check_client(order, caller, "Order")
        if order.status != OrderStatus.PENDING_ACCEPTANCE:
            raise InvalidState(f"Only orders pending acceptance can be rejected. Current status: {order.status.value}")

        previous = await apply_status(db, order, OrderStatus.CANCELLED)
        await contracts.record_rejection(db, order, caller.id, reason, utcnow())
        await events.record_event(
            db, order.id, caller.id, OrderEventType.ORDER_REJECTED,
            f"Order rejected by {caller.role.value}: {reason}",
            {"reason": reason, "rejected_by": caller.id},
        )

    signals.emit_status_change(order, previous, caller.id)
    return order


async def submit_delivery(
    db: AsyncSession,
    caller: Caller,
    order_id: int,
    type: DeliverableType = DeliverableType.MESSAGE,
    file_url: Optional[str] = None,
    message: Optional[str] = None,
) -> Tuple[Order, OrderDeliverable]:
    async with atomic(db):
        order = await load_order(db, order_id, lock=True)
        check_freelancer(order, caller, "Order")
        _ensure_not_disputed(order)
        if order.status not in (OrderStatus.IN_PROGRESS, OrderStatus.REVISION_REQUESTED):
            raise InvalidState(f"Cannot submit delivery. Current status: {order.status.value}")

        is_revision = order.status == OrderStatus.REVISION_REQUESTED
        now = utcnow()
        previous = await apply_status(db, order, OrderStatus.DELIVERED)

        deliverable = OrderDeliverable(
            order_id=order.id,
            type=type,
            file_url=file_url,
            message=message,
            is_revision=is_revision,
            revision_number=order.revisions_used if is_revision else None,
            delivered_at=now,
        )
        db.add(deliverable)
        await db.flush()

        await events.record_event(
            db, order.id, caller.id, OrderEventType.DELIVERY_SUBMITTED,
            f"Revision {deliverable.revision_number} submitted" if is_revision else "Initial delivery submitted",
            {
                "deliverable_id": deliverable.id,
                "is_revision": is_revision,
                "revision_number": deliverable.revision_number,
            },
        )

    signals.emit_status_change(order, previous, caller.id)
    return order, deliverable


async def request_revision(db: AsyncSession, caller: Caller, order_id: int, note: str) -> Order:
    async with atomic(db):
        order = await load_order(db, order_id, lock=True)
        check_client(order, caller, "Order")
        _ensure_not_disputed(order)
        if order.status != OrderStatus.DELIVERED:
            raise InvalidState(f"Revision not allowed. Current status: {order.status.value}")
        if order.revisions_used >= order.revisions_included:
            raise RevisionLimitExceeded(
                f"No revisions left ({order.revisions_used}/{order.revisions_included} used)"
            )

        previous = await apply_status(
            db, order, OrderStatus.REVISION_REQUESTED, revisions_used=order.revisions_used + 1
        )
        await events.record_event(
            db, order.id, caller.id, OrderEventType.REVISION_REQUESTED,
            f"Revision requested: {note}",
            {
                "note": note,
                "revisions_used": order.revisions_used,
                "revisions_included": order.revisions_included,
            },
        )

    signals.emit_status_change(order, previous, caller.id)
    return order


async def accept_delivery(db: AsyncSession, caller: Caller, order_id: int) -> Order:
    async with atomic(db):
        order = await load_order(db, order_id, lock=True)
        check_client(order, caller, "Order")
        _ensure_not_disputed(order)
        if order.status != OrderStatus.DELIVERED:
            raise InvalidState(f"Nothing to accept. Current status: {order.status.value}")

        now = utcnow()
        deliverable = await _latest_deliverable(db, order.id)
        previous = await apply_status(db, order, OrderStatus.COMPLETED, completed_at=now)
        if deliverable is not None:
            deliverable.accepted_at = now
            await db.flush()

        await events.record_event(
            db, order.id, caller.id, OrderEventType.DELIVERY_ACCEPTED,
            "Delivery accepted by client",
            {"deliverable_id": deliverable.id if deliverable else None},
        )

    signals.emit_status_change(order, previous, caller.id)
    return order


async def cancel_order(db: AsyncSession, caller: Caller, order_id: int, reason: str) -> Order:
    async with atomic(db):
        order = await load_order(db, order_id, lock=True)
        check_party(order, caller, "Order")
        _ensure_not_disputed(order)

        previous = await apply_status(db, order, OrderStatus.CANCELLED)
        await events.record_event(
            db, order.id, caller.id, OrderEventType.ORDER_CANCELLED,
            f"Order cancelled by {caller.role.value}: {reason}",
            {"reason": reason, "cancelled_by": caller.id, "previous_status": previous.value},
        )

    signals.emit_status_change(order, previous, caller.id)
    return order


async def get_order(db: AsyncSession, caller: Caller, order_id: int) -> Order:
    order = await load_order(db, order_id)
    check_party(order, caller, "Order")
    return order


async def list_orders(
    db: AsyncSession,
    caller: Caller,
    status: Optional[OrderStatus] = None,
    service_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Order]:
    q = select(Order)

    if caller.role == UserRole.CLIENT:
        q = q.where(Order.client_id == caller.id)
    elif caller.role == UserRole.FREELANCER:
        q = q.where(Order.freelancer_id == caller.id)

    if status:
        q = q.where(Order.status == status)
    if service_id:
        q = q.where(Order.service_id == service_id)

    q = q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
    res = await db.execute(q)
    return list(res.scalars().all())


async def list_deliverables(db: AsyncSession, caller: Caller, order_id: int) -> List[OrderDeliverable]:
    order = await load_order(db, order_id)
    check_party(order, caller, "Order")
    res = await db.execute(
        select(OrderDeliverable)
        .where(OrderDeliverable.order_id == order_id)
        .order_by(OrderDeliverable.delivered_at.desc(), OrderDeliverable.id.desc())
    )
    return list(res.scalars().all())


async def list_events(db: AsyncSession, caller: Caller, order_id: int) -> List[OrderEvent]:
    order = await load_order(db, order_id)
    check_party(order, caller, "Order")
    return await events.fetch_events(db, order_id)
