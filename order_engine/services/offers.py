"""Offers: the only path that produces an order.

A freelancer proposes terms for one of their catalog services; the client
accepts (spawning order, contract and the first order event in a single
transaction) or rejects. An offer leaves PENDING exactly once.
"""
import logging
import secrets
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core.auth_utils import check_client, check_not_found, check_party
from order_engine.core.config import settings
from order_engine.core.enums import OfferStatus, OrderEventType, OrderStatus, Signal
from order_engine.core.exceptions import AlreadyAccepted, Conflict, InvalidPrice, InvalidState, Unauthorized
from order_engine.core.metrics import offers_total
from order_engine.db.session import atomic
from order_engine.models.base import utcnow
from order_engine.models.offer import Offer
from order_engine.models.order import Order
from order_engine.schemas.caller import Caller
from order_engine.services import contracts, events, signals
from order_engine.services.catalog import Catalog

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "No reason provided"


def generate_order_number(year: int | None = None) -> str:
    year = year or utcnow().year
    digits = settings.ORDER_NUMBER_DIGITS
    return f"ORD-{year}-{secrets.randbelow(10 ** digits):0{digits}d}"


async def allocate_order_number(db: AsyncSession) -> str:
    """Pick an order number not yet taken.

    The unique index on orders.order_number still guards the window between
    this check and the insert.
    """
    for _ in range(settings.ORDER_NUMBER_MAX_ATTEMPTS):
        candidate = generate_order_number()
        res = await db.execute(select(Order.id).where(Order.order_number == candidate))
        if res.scalar() is None:
            return candidate
        logger.warning(f"Order number collision on {candidate}, retrying")
    raise Conflict("Could not allocate a unique order number, try again")


async def _load_offer(db: AsyncSession, offer_id: int, lock: bool = False) -> Offer:
    q = select(Offer).where(Offer.id == offer_id).execution_options(populate_existing=True)
    if lock:
        q = q.with_for_update()
    res = await db.execute(q)
    offer = res.scalars().first()
    check_not_found(offer, "Offer", offer_id)
    return offer


def _check_pending(offer: Offer) -> None:
    if offer.order_id is not None or offer.status == OfferStatus.ACCEPTED:
        raise AlreadyAccepted()
    if offer.status != OfferStatus.PENDING:
        raise InvalidState(f"Offer is {offer.status.value}, only pending offers can be answered")


async def _claim_offer(db: AsyncSession, offer: Offer, target: OfferStatus, **values) -> None:
    result = await db.execute(
        update(Offer)
        .where(Offer.id == offer.id, Offer.status == OfferStatus.PENDING, Offer.order_id.is_(None))
        .values(status=target, **values)
    )
    if result.rowcount == 1:
        return

    # lost the race: report what the winner did
    current = await _load_offer(db, offer.id)
    _check_pending(current)
    raise Conflict(f"Offer {offer.id} was modified concurrently")


async def create_offer(
    db: AsyncSession,
    caller: Caller,
    catalog: Catalog,
    *,
    service_id: int,
    client_id: int,
    conversation_id: Optional[int] = None,
    delivery_time_days: Optional[int] = None,
    revisions_included: int = 0,
    scope_of_work: Optional[str] = None,
    cancellation_policy: Optional[str] = None,
    price: Optional[float] = None,
) -> Offer:
    service = await catalog.get_service(service_id)
    check_not_found(service, "Service", service_id)

    if service.owner_id != caller.id:
        raise Unauthorized("Only the freelancer who owns this service can make an offer on it")
    if client_id == caller.id:
        raise InvalidState("You cannot make an offer to yourself")

    effective_price = price if price is not None else service.price
    if effective_price is None or effective_price <= 0:
        offers_total.labels(outcome="invalid_price").inc()
        raise InvalidPrice()

    async with atomic(db):
        offer = Offer(
            service_id=service.id,
            client_id=client_id,
            freelancer_id=caller.id,
            conversation_id=conversation_id,
            status=OfferStatus.PENDING,
            price=effective_price,
            currency=service.currency or settings.DEFAULT_CURRENCY,
            delivery_time_days=delivery_time_days or settings.DEFAULT_DELIVERY_DAYS,
            revisions_included=revisions_included,
            scope_of_work=scope_of_work or service.description,
            cancellation_policy=cancellation_policy or settings.DEFAULT_CANCELLATION_POLICY,
            service_title=service.title,
            service_description=service.description,
        )
        db.add(offer)
        await db.flush()

    offers_total.labels(outcome="created").inc()
    logger.info(f"Offer {offer.id} created by freelancer {caller.id} for client {client_id}")
    signals.emit(Signal.OFFER_CREATED, {
        "offer_id": offer.id,
        "service_id": offer.service_id,
        "client_id": offer.client_id,
        "freelancer_id": offer.freelancer_id,
        "conversation_id": offer.conversation_id,
        "price": offer.price,
        "currency": offer.currency,
    })
    return offer


async def accept_offer(
    db: AsyncSession,
    caller: Caller,
    offer_id: int,
    client_ip_address: Optional[str] = None,
) -> Tuple[Offer, Order]:
    async with atomic(db):
        offer = await _load_offer(db, offer_id, lock=True)
        check_client(offer, caller, "Offer")
        _check_pending(offer)

        now = utcnow()
        await _claim_offer(db, offer, OfferStatus.ACCEPTED, accepted_at=now)

        order = Order(
            order_number=await allocate_order_number(db),
            offer_id=offer.id,
            service_id=offer.service_id,
            client_id=offer.client_id,
            freelancer_id=offer.freelancer_id,
            conversation_id=offer.conversation_id,
            status=OrderStatus.IN_PROGRESS,
            price=offer.price,
            currency=offer.currency,
            delivery_time_days=offer.delivery_time_days,
            revisions_included=offer.revisions_included,
            revisions_used=0,
            delivery_date=now + timedelta(days=offer.delivery_time_days),
            client_ip_address=client_ip_address,
        )
        db.add(order)
        try:
            await db.flush()
        except IntegrityError as e:
            raise Conflict("Order could not be created, the offer or order number is already taken") from e

        await contracts.create_contract(db, order, offer, now, client_ip_address)
        await events.record_event(
            db, order.id, caller.id, OrderEventType.ORDER_CREATED,
            f"Order {order.order_number} created from offer {offer.id}",
            {
                "offer_id": offer.id,
                "service_title": offer.service_title,
                "price": offer.price,
                "delivery_time_days": offer.delivery_time_days,
                "created_by": caller.id,
            },
        )

        offer.status = OfferStatus.ACCEPTED
        offer.accepted_at = now
        offer.order_id = order.id
        await db.flush()

    offers_total.labels(outcome="accepted").inc()
    logger.info(f"Offer {offer.id} accepted, order {order.order_number} created")
    signals.emit(Signal.OFFER_ACCEPTED, {
        "offer_id": offer.id,
        "order_id": order.id,
        "order_number": order.order_number,
        "client_id": order.client_id,
        "freelancer_id": order.freelancer_id,
    })
    return offer, order


async def reject_offer(db: AsyncSession, caller: Caller, offer_id: int, reason: Optional[str] = None) -> Offer:
    reason = (reason or "").strip() or DEFAULT_REJECTION_REASON

    async with atomic(db):
        offer = await _load_offer(db, offer_id, lock=True)
        check_client(offer, caller, "Offer")
        _check_pending(offer)

        now = utcnow()
        await _claim_offer(db, offer, OfferStatus.REJECTED, rejected_at=now, rejection_reason=reason)
        offer.status = OfferStatus.REJECTED
        offer.rejected_at = now
        offer.rejection_reason = reason

    offers_total.labels(outcome="rejected").inc()
    logger.info(f"Offer {offer.id} rejected by client {caller.id}")
    signals.emit(Signal.OFFER_REJECTED, {
        "offer_id": offer.id,
        "client_id": offer.client_id,
        "freelancer_id": offer.freelancer_id,
        "reason": reason,
    })
    return offer


async def get_offer(db: AsyncSession, caller: Caller, offer_id: int) -> Offer:
    offer = await _load_offer(db, offer_id)
    check_party(offer, caller, "Offer")
    return offer


async def list_offers_for_conversation(db: AsyncSession, caller: Caller, conversation_id: int) -> List[Offer]:
    q = select(Offer).where(Offer.conversation_id == conversation_id)
    if not caller.is_admin:
        q = q.where(or_(Offer.client_id == caller.id, Offer.freelancer_id == caller.id))
    q = q.order_by(Offer.created_at.desc(), Offer.id.desc())
    res = await db.execute(q)
    return list(res.scalars().all())
