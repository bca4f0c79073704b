from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from order_engine.db.session import get_db
from order_engine.schemas.caller import Caller
from order_engine.schemas.offer import OfferAcceptOut, OfferCreate, OfferOut, OfferReject
from order_engine.core.security import get_current_caller
from order_engine.core.audit_decorator import audit_log
from order_engine.core.rate_limit import check_rate_limit
from order_engine.core.enums import AuditAction
from order_engine.core.response_builders import (
    build_offer_accept_response,
    build_offer_response,
    build_offer_response_list,
)
from order_engine.services import offers
from order_engine.services.catalog import Catalog, get_catalog
from order_engine.utils.hashing import idempotency_key
from order_engine.utils.idempotency import get_idempotent, set_idempotent

router = APIRouter(prefix="/offers", tags=["offers"])


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/", response_model=OfferOut)
@audit_log(AuditAction.CREATE_OFFER)
async def create_offer(
    payload: OfferCreate,
    idempotency_key_header: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    catalog: Catalog = Depends(get_catalog),
    caller: Caller = Depends(get_current_caller),
):
    """Freelancer proposes terms for one of their services.

    A repeated ``Idempotency-Key`` from the same caller replays the first
    response instead of creating a second offer.
    """
    await check_rate_limit(caller.id)

    key = idempotency_key(caller.id, "offers", idempotency_key_header) if idempotency_key_header else None
    if key:
        cached = await get_idempotent(key)
        if cached:
            return OfferOut.model_validate(cached)

    offer = await offers.create_offer(db, caller, catalog, **payload.model_dump())
    response = build_offer_response(offer)

    if key:
        await set_idempotent(key, response.model_dump(mode="json"))
    return response


@router.get("/conversation/{conversation_id}", response_model=List[OfferOut])
async def list_conversation_offers(
    conversation_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_offer_response_list(await offers.list_offers_for_conversation(db, caller, conversation_id))


@router.get("/{offer_id}", response_model=OfferOut)
async def get_offer(
    offer_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_offer_response(await offers.get_offer(db, caller, offer_id))


@router.post("/{offer_id}/accept", response_model=OfferAcceptOut)
@audit_log(AuditAction.ACCEPT_OFFER)
async def accept_offer(
    offer_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    offer, order = await offers.accept_offer(db, caller, offer_id, client_ip_address=client_ip(request))
    return build_offer_accept_response(offer, order)


@router.post("/{offer_id}/reject", response_model=OfferOut)
@audit_log(AuditAction.REJECT_OFFER)
async def reject_offer(
    offer_id: int,
    payload: OfferReject,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    offer = await offers.reject_offer(db, caller, offer_id, payload.rejection_reason)
    return build_offer_response(offer)
