"""Contract materialization and status mirroring.

A contract is written once, together with its order, from the accepted offer.
Afterwards only its status moves, in lock-step with the order.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core.auth_utils import check_not_found, check_party
from order_engine.core.enums import ContractStatus, OrderStatus
from order_engine.models.contract import Contract
from order_engine.models.offer import Offer
from order_engine.models.order import Order
from order_engine.schemas.caller import Caller

logger = logging.getLogger(__name__)

CONTRACT_STATUS_FOR_ORDER = {
    OrderStatus.PENDING_ACCEPTANCE: ContractStatus.ACTIVE,
    OrderStatus.IN_PROGRESS: ContractStatus.ACTIVE,
    OrderStatus.DELIVERED: ContractStatus.ACTIVE,
    OrderStatus.REVISION_REQUESTED: ContractStatus.ACTIVE,
    OrderStatus.DISPUTED: ContractStatus.DISPUTED,
    OrderStatus.COMPLETED: ContractStatus.COMPLETED,
    OrderStatus.CANCELLED: ContractStatus.CANCELLED,
}


async def create_contract(
    db: AsyncSession,
    order: Order,
    offer: Offer,
    accepted_at: datetime,
    client_ip_address: Optional[str] = None,
) -> Contract:
    contract = Contract(
        order_id=order.id,
        service_title=offer.service_title,
        service_description=offer.service_description or "",
        scope_of_work=offer.scope_of_work,
        price=offer.price,
        currency=offer.currency,
        delivery_time_days=offer.delivery_time_days,
        revisions_included=offer.revisions_included,
        cancellation_policy=offer.cancellation_policy,
        status=CONTRACT_STATUS_FOR_ORDER[order.status],
        client_accepted_at=accepted_at,
        client_ip_address=client_ip_address,
    )
    db.add(contract)
    await db.flush()
    return contract


async def mirror_order_status(db: AsyncSession, order: Order) -> None:
    await db.execute(
        update(Contract)
        .where(Contract.order_id == order.id)
        .values(status=CONTRACT_STATUS_FOR_ORDER[order.status])
    )


async def record_freelancer_acceptance(db: AsyncSession, order: Order, accepted_at: datetime) -> None:
    await db.execute(
        update(Contract)
        .where(Contract.order_id == order.id)
        .values(freelancer_accepted_at=accepted_at)
    )


async def record_rejection(
    db: AsyncSession, order: Order, rejected_by: int, reason: str, rejected_at: datetime
) -> None:
    await db.execute(
        update(Contract)
        .where(Contract.order_id == order.id)
        .values(rejection_reason=reason, rejected_at=rejected_at, rejected_by=rejected_by)
    )


async def fetch_contract(db: AsyncSession, order_id: int) -> Optional[Contract]:
    res = await db.execute(select(Contract).where(Contract.order_id == order_id))
    return res.scalars().first()


async def get_by_order_id(db: AsyncSession, caller: Caller, order_id: int) -> Contract:
    order = await db.get(Order, order_id)
    check_not_found(order, "Order", order_id)
    check_party(order, caller, "Order")

    contract = await fetch_contract(db, order_id)
    check_not_found(contract, "Contract")
    return contract
