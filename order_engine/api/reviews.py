from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from order_engine.db.session import get_db
from order_engine.schemas.caller import Caller
from order_engine.schemas.review import RatingOut, ReviewCreate, ReviewOut
from order_engine.core.security import get_current_caller
from order_engine.core.audit_decorator import audit_log
from order_engine.core.rate_limit import check_rate_limit
from order_engine.core.enums import AuditAction
from order_engine.core.response_builders import (
    build_rating_response,
    build_review_response,
    build_review_response_list,
)
from order_engine.services import reviews
from order_engine.services.catalog import Catalog, get_catalog

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("/", response_model=ReviewOut)
@audit_log(AuditAction.SUBMIT_REVIEW)
async def submit_review(
    payload: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    catalog: Catalog = Depends(get_catalog),
    caller: Caller = Depends(get_current_caller),
):
    await check_rate_limit(caller.id)
    review = await reviews.submit_review(db, caller, catalog, **payload.model_dump())
    return build_review_response(review)


@router.get("/order/{order_id}", response_model=List[ReviewOut])
async def order_reviews(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_review_response_list(await reviews.list_order_reviews(db, caller, order_id))


@router.get("/service/{service_id}", response_model=List[ReviewOut])
async def service_reviews(
    service_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_review_response_list(await reviews.list_service_reviews(db, service_id))


@router.get("/user/{user_id}", response_model=List[ReviewOut])
async def user_reviews(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_review_response_list(await reviews.list_user_reviews(db, user_id))


@router.get("/user/{user_id}/rating", response_model=RatingOut)
async def user_rating(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return build_rating_response(await reviews.get_rating(db, user_id))
