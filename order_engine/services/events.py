"""Append-only order event log.

Each event type declares the metadata keys it must carry so the log stays
machine-readable. Events are only ever inserted, never updated or deleted.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core.enums import OrderEventType
from order_engine.models.order_event import OrderEvent

logger = logging.getLogger(__name__)

EVENT_METADATA_KEYS: Dict[OrderEventType, frozenset] = {
    OrderEventType.ORDER_CREATED: frozenset({"offer_id", "service_title", "price", "delivery_time_days", "created_by"}),
    OrderEventType.ORDER_STARTED: frozenset({"delivery_date"}),
    OrderEventType.DELIVERY_SUBMITTED: frozenset({"deliverable_id", "is_revision", "revision_number"}),
    OrderEventType.REVISION_REQUESTED: frozenset({"note", "revisions_used", "revisions_included"}),
    OrderEventType.DELIVERY_ACCEPTED: frozenset({"deliverable_id"}),
    OrderEventType.ORDER_CANCELLED: frozenset({"reason", "cancelled_by", "previous_status"}),
    OrderEventType.ORDER_REJECTED: frozenset({"reason", "rejected_by"}),
    OrderEventType.DISPUTE_OPENED: frozenset({"dispute_id", "reason", "previous_status"}),
    OrderEventType.DISPUTE_IN_REVIEW: frozenset({"dispute_id"}),
    OrderEventType.DISPUTE_RESOLVED: frozenset({"dispute_id", "dispute_status", "order_action", "resolved_by"}),
}


def _serializable(metadata: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(json.dumps(metadata, default=str))


async def record_event(
    db: AsyncSession,
    order_id: int,
    user_id: int,
    event_type: OrderEventType,
    description: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> OrderEvent:
    metadata = dict(metadata or {})
    missing = EVENT_METADATA_KEYS[event_type] - metadata.keys()
    if missing:
        raise ValueError(f"{event_type} event is missing metadata keys: {sorted(missing)}")

    event = OrderEvent(
        order_id=order_id,
        user_id=user_id,
        event_type=event_type,
        description=description,
        event_metadata=_serializable(metadata),
    )
    db.add(event)
    await db.flush()
    logger.debug(f"Recorded {event_type} for order {order_id}")
    return event


async def fetch_events(db: AsyncSession, order_id: int) -> List[OrderEvent]:
    res = await db.execute(
        select(OrderEvent)
        .where(OrderEvent.order_id == order_id)
        .order_by(OrderEvent.created_at, OrderEvent.id)
    )
    return list(res.scalars().all())
