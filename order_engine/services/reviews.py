"""Review gate and rating aggregate.

Order reviews open once an order is COMPLETED and follow a fixed order: the
client reviews first, then the freelancer may answer. Each party reviews an
order once. Service reviews are independent of orders: anyone but the owner
may leave one per service.

The reviewee's aggregate is re-derived from the review table inside the same
transaction as the insert, never incremented from a cached value.
"""
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core.auth_utils import check_not_found, check_party, is_party
from order_engine.core.enums import OrderStatus, Signal
from order_engine.core.exceptions import (
    AlreadyReviewed,
    Conflict,
    InvalidReview,
    InvalidState,
    OrderEngineError,
    Unauthorized,
)
from order_engine.core.metrics import reviews_total
from order_engine.db.session import atomic
from order_engine.models.order import Order
from order_engine.models.review import Review, UserRating
from order_engine.schemas.caller import Caller
from order_engine.schemas.review import ReviewEligibility
from order_engine.services import lifecycle, signals
from order_engine.services.catalog import Catalog

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


async def _find_order_review(db: AsyncSession, order_id: int, reviewer_id: int, as_client: bool) -> Optional[Review]:
    res = await db.execute(
        select(Review).where(
            Review.order_id == order_id,
            Review.reviewer_id == reviewer_id,
            Review.is_client_review == as_client,
        )
    )
    return res.scalars().first()


async def _client_review_exists(db: AsyncSession, order: Order) -> bool:
    res = await db.execute(
        select(Review.id).where(
            Review.order_id == order.id,
            Review.reviewer_id == order.client_id,
            Review.is_client_review.is_(True),
        )
    )
    return res.scalar() is not None


async def _order_review_block(db: AsyncSession, order: Order, caller: Caller) -> Optional[OrderEngineError]:
    """Return the error that stops ``caller`` from reviewing ``order`` now, if any."""
    if not is_party(order, caller):
        return Unauthorized("You are not part of this order")
    if order.status != OrderStatus.COMPLETED:
        return InvalidState("Order must be completed to review")

    as_client = caller.id == order.client_id
    if await _find_order_review(db, order.id, caller.id, as_client):
        return AlreadyReviewed()
    if not as_client and not await _client_review_exists(db, order):
        return InvalidState("Client review is required first")
    return None


async def can_review(db: AsyncSession, caller: Caller, order_id: int) -> ReviewEligibility:
    order = await lifecycle.load_order(db, order_id)
    block = await _order_review_block(db, order, caller)
    if block is not None:
        return ReviewEligibility(allowed=False, reason=block.detail)
    return ReviewEligibility(allowed=True, as_client=caller.id == order.client_id)


async def refresh_rating(db: AsyncSession, user_id: int) -> UserRating:
    """Rewrite the aggregate for ``user_id`` from every review they received."""
    rating = await db.get(UserRating, user_id, with_for_update=True, populate_existing=True)
    if rating is None:
        # first review for this user; a concurrent first writer trips the primary key here
        rating = UserRating(user_id=user_id, average_rating=0.0, review_count=0)
        db.add(rating)
        await _flush_rating(db, user_id)

    res = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.reviewee_id == user_id)
    )
    average, count = res.one()
    rating.average_rating = round(float(average or 0), 2)
    rating.review_count = count

    await _flush_rating(db, user_id)
    return rating


async def _flush_rating(db: AsyncSession, user_id: int) -> None:
    try:
        await db.flush()
    except IntegrityError as e:
        raise Conflict(f"Rating for user {user_id} was updated concurrently") from e


async def _insert_review(db: AsyncSession, review: Review, duplicate_detail: str) -> Review:
    db.add(review)
    try:
        await db.flush()
    except IntegrityError as e:
        raise AlreadyReviewed(duplicate_detail) from e
    return review


async def _submit_order_review(
    db: AsyncSession,
    caller: Caller,
    order_id: int,
    reviewee_id: int,
    rating: int,
    comment: Optional[str],
    is_client_review: Optional[bool],
) -> Review:
    order = await lifecycle.load_order(db, order_id, lock=True)
    block = await _order_review_block(db, order, caller)
    if block is not None:
        raise block

    as_client = caller.id == order.client_id
    if is_client_review is not None and is_client_review != as_client:
        raise InvalidReview("isClientReview does not match your role on this order")

    counterpart = order.freelancer_id if as_client else order.client_id
    if reviewee_id != counterpart:
        raise InvalidReview("You can only review the other party of this order")

    return await _insert_review(
        db,
        Review(
            order_id=order.id,
            reviewer_id=caller.id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=comment,
            is_order_review=True,
            is_client_review=as_client,
        ),
        AlreadyReviewed.default_detail,
    )


async def _submit_service_review(
    db: AsyncSession,
    caller: Caller,
    catalog: Catalog,
    service_id: int,
    reviewee_id: int,
    rating: int,
    comment: Optional[str],
) -> Review:
    service = await catalog.get_service(service_id)
    check_not_found(service, "Service", service_id)

    if caller.id == service.owner_id:
        raise InvalidReview("You cannot review your own service")
    if reviewee_id != service.owner_id:
        raise InvalidReview("A service review must be addressed to the service owner")

    res = await db.execute(
        select(Review.id).where(Review.service_id == service_id, Review.reviewer_id == caller.id)
    )
    if res.scalar() is not None:
        raise AlreadyReviewed("You have already reviewed this service")

    return await _insert_review(
        db,
        Review(
            service_id=service_id,
            reviewer_id=caller.id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=comment,
            is_order_review=False,
            is_client_review=None,
        ),
        "You have already reviewed this service",
    )


async def submit_review(
    db: AsyncSession,
    caller: Caller,
    catalog: Catalog,
    *,
    reviewee_id: int,
    rating: int,
    comment: Optional[str] = None,
    order_id: Optional[int] = None,
    service_id: Optional[int] = None,
    is_order_review: bool = True,
    is_client_review: Optional[bool] = None,
) -> Review:
    if (order_id is None) == (service_id is None):
        raise InvalidReview("Exactly one of orderId or serviceId is required")
    if is_order_review != (order_id is not None):
        raise InvalidReview("isOrderReview must be true for order reviews and false for service reviews")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidReview(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    if reviewee_id == caller.id:
        raise InvalidReview("You cannot review yourself")

    async with atomic(db):
        if order_id is not None:
            review = await _submit_order_review(
                db, caller, order_id, reviewee_id, rating, comment, is_client_review
            )
        else:
            review = await _submit_service_review(
                db, caller, catalog, service_id, reviewee_id, rating, comment
            )
        aggregate = await refresh_rating(db, reviewee_id)

    if not review.is_order_review:
        kind = "service"
    elif review.is_client_review:
        kind = "client"
    else:
        kind = "freelancer"
    reviews_total.labels(kind=kind).inc()
    logger.info(
        f"Review {review.id} ({kind}) by user {caller.id} for user {reviewee_id}; "
        f"average now {aggregate.average_rating} over {aggregate.review_count}"
    )
    signals.emit(Signal.REVIEW_SUBMITTED, {
        "review_id": review.id,
        "order_id": review.order_id,
        "service_id": review.service_id,
        "reviewer_id": review.reviewer_id,
        "reviewee_id": review.reviewee_id,
        "rating": review.rating,
    })
    return review


async def get_rating(db: AsyncSession, user_id: int) -> UserRating:
    rating = await db.get(UserRating, user_id)
    if rating is None:
        return UserRating(user_id=user_id, average_rating=0.0, review_count=0)
    return rating


async def list_order_reviews(db: AsyncSession, caller: Caller, order_id: int) -> List[Review]:
    order = await lifecycle.load_order(db, order_id)
    check_party(order, caller, "Order")
    res = await db.execute(
        select(Review).where(Review.order_id == order_id).order_by(Review.created_at, Review.id)
    )
    return list(res.scalars().all())


async def list_service_reviews(db: AsyncSession, service_id: int) -> List[Review]:
    res = await db.execute(
        select(Review)
        .where(Review.service_id == service_id, Review.is_order_review.is_(False))
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    return list(res.scalars().all())


async def list_user_reviews(db: AsyncSession, user_id: int) -> List[Review]:
    res = await db.execute(
        select(Review)
        .where(Review.reviewee_id == user_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    return list(res.scalars().all())
