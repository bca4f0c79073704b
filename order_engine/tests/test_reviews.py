"""
Review gate: client-first ordering on completed orders, one review per
direction, service reviews and the rating aggregate.
"""
import asyncio

import pytest
from sqlalchemy import func, select

from order_engine.core.enums import Signal
from order_engine.core.exceptions import AlreadyReviewed, Conflict, InvalidReview, InvalidState, Unauthorized
from order_engine.models.review import Review, UserRating
from order_engine.services import lifecycle, reviews

from conftest import CLIENT_ID, FREELANCER_ID, OTHER_CLIENT_ID, SERVICE_ID


@pytest.fixture
def completed_order(db, order_factory, client_caller, freelancer_caller):
    async def _complete(**kwargs):
        order = await order_factory(**kwargs)
        await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="Final files")
        return await lifecycle.accept_delivery(db, client_caller, order.id)

    return _complete


async def client_review(db, catalog, caller, order_id, rating=5):
    return await reviews.submit_review(
        db, caller, catalog, order_id=order_id, reviewee_id=FREELANCER_ID, rating=rating,
        comment="Great work", is_client_review=True,
    )


async def freelancer_review(db, catalog, caller, order_id, rating=4):
    return await reviews.submit_review(
        db, caller, catalog, order_id=order_id, reviewee_id=CLIENT_ID, rating=rating,
        comment="Clear brief", is_client_review=False,
    )


@pytest.mark.reviews
class TestCanReview:

    @pytest.mark.asyncio
    async def test_not_completed(self, db, order_factory, client_caller):
        order = await order_factory()

        eligibility = await reviews.can_review(db, client_caller, order.id)
        assert eligibility.allowed is False
        assert eligibility.reason == "Order must be completed to review"

    @pytest.mark.asyncio
    async def test_client_first(self, db, catalog, completed_order, client_caller, freelancer_caller):
        order = await completed_order()

        client_view = await reviews.can_review(db, client_caller, order.id)
        assert client_view.allowed is True
        assert client_view.as_client is True

        freelancer_view = await reviews.can_review(db, freelancer_caller, order.id)
        assert freelancer_view.allowed is False
        assert freelancer_view.reason == "Client review is required first"

        await client_review(db, catalog, client_caller, order.id)

        assert (await reviews.can_review(db, freelancer_caller, order.id)).allowed is True
        client_view = await reviews.can_review(db, client_caller, order.id)
        assert client_view.allowed is False
        assert client_view.reason == "You have already reviewed this order"

    @pytest.mark.asyncio
    async def test_outsider(self, db, completed_order, other_client_caller):
        order = await completed_order()
        eligibility = await reviews.can_review(db, other_client_caller, order.id)
        assert eligibility.allowed is False


@pytest.mark.reviews
class TestOrderReviews:

    @pytest.mark.asyncio
    async def test_two_sided_scenario(self, db, catalog, completed_order, client_caller, freelancer_caller, signal_log):
        order_id = (await completed_order()).id

        with pytest.raises(InvalidState, match="Client review is required first"):
            await freelancer_review(db, catalog, freelancer_caller, order_id)

        first = await client_review(db, catalog, client_caller, order_id, rating=5)
        second = await freelancer_review(db, catalog, freelancer_caller, order_id)

        assert first.is_client_review is True
        assert second.is_client_review is False
        assert second.reviewee_id == CLIENT_ID
        assert [s for s, _ in signal_log].count(str(Signal.REVIEW_SUBMITTED)) == 2

        listed = await reviews.list_order_reviews(db, client_caller, order_id)
        assert [r.id for r in listed] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_duplicate_review(self, db, catalog, completed_order, client_caller):
        order_id = (await completed_order()).id
        await client_review(db, catalog, client_caller, order_id)

        with pytest.raises(AlreadyReviewed):
            await client_review(db, catalog, client_caller, order_id, rating=1)

        count = (await db.execute(select(func.count(Review.id)).where(Review.order_id == order_id))).scalar()
        assert count == 1

    @pytest.mark.asyncio
    async def test_requires_completed_order(self, db, catalog, order_factory, client_caller):
        order_id = (await order_factory()).id
        with pytest.raises(InvalidState, match="Order must be completed to review"):
            await client_review(db, catalog, client_caller, order_id)

    @pytest.mark.asyncio
    async def test_outsider_cannot_review(self, db, catalog, completed_order, other_client_caller):
        order_id = (await completed_order()).id
        with pytest.raises(Unauthorized):
            await client_review(db, catalog, other_client_caller, order_id)

    @pytest.mark.asyncio
    async def test_direction_must_match_role(self, db, catalog, completed_order, client_caller):
        order_id = (await completed_order()).id
        with pytest.raises(InvalidReview):
            await reviews.submit_review(
                db, client_caller, catalog, order_id=order_id, reviewee_id=FREELANCER_ID,
                rating=5, is_client_review=False,
            )

    @pytest.mark.asyncio
    async def test_reviewee_must_be_counterpart(self, db, catalog, completed_order, client_caller):
        order_id = (await completed_order()).id
        with pytest.raises(InvalidReview):
            await reviews.submit_review(
                db, client_caller, catalog, order_id=order_id, reviewee_id=OTHER_CLIENT_ID, rating=5,
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6])
    async def test_rating_bounds(self, db, catalog, completed_order, client_caller, rating):
        order_id = (await completed_order()).id
        with pytest.raises(InvalidReview):
            await client_review(db, catalog, client_caller, order_id, rating=rating)

    @pytest.mark.asyncio
    async def test_order_xor_service(self, db, catalog, client_caller):
        with pytest.raises(InvalidReview):
            await reviews.submit_review(
                db, client_caller, catalog, order_id=1, service_id=SERVICE_ID, reviewee_id=FREELANCER_ID, rating=5,
            )
        with pytest.raises(InvalidReview):
            await reviews.submit_review(db, client_caller, catalog, reviewee_id=FREELANCER_ID, rating=5)

    @pytest.mark.asyncio
    @pytest.mark.concurrency
    async def test_concurrent_duplicate_submits(self, session_factory, catalog, completed_order, client_caller):
        order_id = (await completed_order()).id

        async def submit():
            async with session_factory() as session:
                return await client_review(session, catalog, client_caller, order_id)

        results = await asyncio.gather(submit(), submit(), return_exceptions=True)

        assert len([r for r in results if not isinstance(r, BaseException)]) == 1
        async with session_factory() as session:
            count = (await session.execute(select(func.count(Review.id)).where(Review.order_id == order_id))).scalar()
        assert count == 1


@pytest.mark.reviews
class TestServiceReviews:

    @pytest.mark.asyncio
    async def test_service_review(self, db, catalog, client_caller):
        review = await reviews.submit_review(
            db, client_caller, catalog, service_id=SERVICE_ID, reviewee_id=FREELANCER_ID,
            rating=4, comment="Quick turnaround", is_order_review=False,
        )

        assert review.order_id is None
        assert review.is_order_review is False
        assert review.is_client_review is None
        assert [r.id for r in await reviews.list_service_reviews(db, SERVICE_ID)] == [review.id]

    @pytest.mark.asyncio
    async def test_owner_cannot_review_own_service(self, db, catalog, freelancer_caller):
        with pytest.raises(InvalidReview):
            await reviews.submit_review(
                db, freelancer_caller, catalog, service_id=SERVICE_ID, reviewee_id=CLIENT_ID,
                rating=5, is_order_review=False,
            )

    @pytest.mark.asyncio
    async def test_reviewee_must_be_owner(self, db, catalog, client_caller):
        with pytest.raises(InvalidReview):
            await reviews.submit_review(
                db, client_caller, catalog, service_id=SERVICE_ID, reviewee_id=OTHER_CLIENT_ID,
                rating=5, is_order_review=False,
            )

    @pytest.mark.asyncio
    async def test_one_review_per_service(self, db, catalog, client_caller):
        await reviews.submit_review(
            db, client_caller, catalog, service_id=SERVICE_ID, reviewee_id=FREELANCER_ID,
            rating=4, is_order_review=False,
        )
        with pytest.raises(AlreadyReviewed):
            await reviews.submit_review(
                db, client_caller, catalog, service_id=SERVICE_ID, reviewee_id=FREELANCER_ID,
                rating=2, is_order_review=False,
            )


@pytest.mark.reviews
class TestRatingAggregate:

    @pytest.mark.asyncio
    async def test_aggregate_is_recomputed(
        self, db, catalog, completed_order, client_caller, other_client_caller
    ):
        first_id = (await completed_order()).id
        await client_review(db, catalog, client_caller, first_id, rating=5)

        await reviews.submit_review(
            db, other_client_caller, catalog, service_id=SERVICE_ID, reviewee_id=FREELANCER_ID,
            rating=2, is_order_review=False,
        )

        rating = await reviews.get_rating(db, FREELANCER_ID)
        assert rating.review_count == 2
        assert rating.average_rating == 3.5
        assert len(await reviews.list_user_reviews(db, FREELANCER_ID)) == 2

    @pytest.mark.asyncio
    async def test_rating_for_unreviewed_user(self, db):
        rating = await reviews.get_rating(db, 12345)
        assert rating.review_count == 0
        assert rating.average_rating == 0.0

    @pytest.mark.asyncio
    @pytest.mark.concurrency
    async def test_concurrent_reviews_keep_every_vote(
        self, session_factory, catalog, client_caller, other_client_caller
    ):
        async def review_service(caller, rating):
            async with session_factory() as session:
                return await reviews.submit_review(
                    session, caller, catalog, service_id=SERVICE_ID, reviewee_id=FREELANCER_ID,
                    rating=rating, is_order_review=False,
                )

        results = await asyncio.gather(
            review_service(client_caller, 5), review_service(other_client_caller, 2), return_exceptions=True
        )
        assert not [r for r in results if isinstance(r, BaseException)]

        async with session_factory() as session:
            rating = await reviews.get_rating(session, FREELANCER_ID)
        assert rating.review_count == 2
        assert rating.average_rating == 3.5

    @pytest.mark.asyncio
    async def test_racing_first_rating_row_is_a_conflict(
        self, db, session_factory, catalog, completed_order, client_caller, monkeypatch
    ):
        order_id = (await completed_order()).id

        # another writer created the aggregate after this session looked for it
        async with session_factory() as other:
            other.add(UserRating(user_id=FREELANCER_ID, average_rating=0.0, review_count=0))
            await other.commit()

        real_get = db.get

        async def stale_get(entity, ident, **kwargs):
            if entity is UserRating:
                return None
            return await real_get(entity, ident, **kwargs)

        monkeypatch.setattr(db, "get", stale_get)

        with pytest.raises(Conflict):
            await client_review(db, catalog, client_caller, order_id)

        async with session_factory() as other:
            count = (await other.execute(select(func.count(Review.id)).where(Review.order_id == order_id))).scalar()
        assert count == 0
