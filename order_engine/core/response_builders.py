from typing import Dict, Optional
from order_engine.models.contract import Contract
from order_engine.models.dispute import Dispute, DisputeComment
from order_engine.models.offer import Offer
from order_engine.models.order import Order, OrderDeliverable
from order_engine.models.order_event import OrderEvent
from order_engine.models.review import Review, UserRating
from order_engine.schemas.dispute import CommentOut, DisputeListOut, DisputeOut
from order_engine.schemas.offer import OfferAcceptOut, OfferOut
from order_engine.schemas.order import ContractOut, DeliverableOut, OrderEventOut, OrderOut
from order_engine.schemas.review import RatingOut, ReviewOut


def build_offer_response(offer: Offer) -> OfferOut:
    return OfferOut(
        id=offer.id,
        service_id=offer.service_id,
        client_id=offer.client_id,
        freelancer_id=offer.freelancer_id,
        conversation_id=offer.conversation_id,
        status=offer.status,
        price=offer.price,
        currency=offer.currency,
        delivery_time_days=offer.delivery_time_days,
        revisions_included=offer.revisions_included,
        scope_of_work=offer.scope_of_work,
        cancellation_policy=offer.cancellation_policy,
        service_title=offer.service_title,
        service_description=offer.service_description,
        order_id=offer.order_id,
        rejection_reason=offer.rejection_reason,
        accepted_at=offer.accepted_at,
        rejected_at=offer.rejected_at,
        created_at=offer.created_at,
    )


def build_order_response(order: Order) -> OrderOut:
    return OrderOut(
        id=order.id,
        order_number=order.order_number,
        offer_id=order.offer_id,
        service_id=order.service_id,
        client_id=order.client_id,
        freelancer_id=order.freelancer_id,
        conversation_id=order.conversation_id,
        status=order.status,
        price=order.price,
        currency=order.currency,
        delivery_time_days=order.delivery_time_days,
        revisions_included=order.revisions_included,
        revisions_used=order.revisions_used,
        delivery_date=order.delivery_date,
        completed_at=order.completed_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def build_offer_accept_response(offer: Offer, order: Order) -> OfferAcceptOut:
    return OfferAcceptOut(offer=build_offer_response(offer), order=build_order_response(order))


def build_deliverable_response(deliverable: OrderDeliverable) -> DeliverableOut:
    return DeliverableOut(
        id=deliverable.id,
        order_id=deliverable.order_id,
        type=deliverable.type,
        file_url=deliverable.file_url,
        message=deliverable.message,
        is_revision=deliverable.is_revision,
        revision_number=deliverable.revision_number,
        delivered_at=deliverable.delivered_at,
        accepted_at=deliverable.accepted_at,
    )


def build_contract_response(contract: Contract) -> ContractOut:
    return ContractOut(
        order_id=contract.order_id,
        service_title=contract.service_title,
        service_description=contract.service_description,
        scope_of_work=contract.scope_of_work,
        price=contract.price,
        currency=contract.currency,
        delivery_time_days=contract.delivery_time_days,
        revisions_included=contract.revisions_included,
        cancellation_policy=contract.cancellation_policy,
        status=contract.status,
        client_accepted_at=contract.client_accepted_at,
        freelancer_accepted_at=contract.freelancer_accepted_at,
        rejection_reason=contract.rejection_reason,
        rejected_at=contract.rejected_at,
        rejected_by=contract.rejected_by,
    )


def build_event_response(event: OrderEvent) -> OrderEventOut:
    return OrderEventOut(
        id=event.id,
        order_id=event.order_id,
        user_id=event.user_id,
        event_type=event.event_type,
        description=event.description,
        metadata=event.event_metadata or {},
        created_at=event.created_at,
    )


def build_dispute_response(dispute: Dispute) -> DisputeOut:
    return DisputeOut(
        id=dispute.id,
        order_id=dispute.order_id,
        client_id=dispute.client_id,
        freelancer_id=dispute.freelancer_id,
        opened_by=dispute.opened_by,
        reason=dispute.reason,
        description=dispute.description,
        attachments=dispute.attachments or [],
        status=dispute.status,
        admin_resolution=dispute.admin_resolution,
        resolved_by=dispute.resolved_by,
        resolved_at=dispute.resolved_at,
        created_at=dispute.created_at,
    )


def build_comment_response(comment: DisputeComment) -> CommentOut:
    return CommentOut(
        id=comment.id,
        dispute_id=comment.dispute_id,
        user_id=comment.user_id,
        role=comment.role,
        content=comment.content,
        attachments=comment.attachments or [],
        created_at=comment.created_at,
    )


def build_dispute_list_response(disputes: list, metrics: Optional[Dict[str, int]] = None) -> DisputeListOut:
    return DisputeListOut(disputes=[build_dispute_response(d) for d in disputes], metrics=metrics)


def build_review_response(review: Review) -> ReviewOut:
    return ReviewOut(
        id=review.id,
        order_id=review.order_id,
        service_id=review.service_id,
        reviewer_id=review.reviewer_id,
        reviewee_id=review.reviewee_id,
        rating=review.rating,
        comment=review.comment,
        is_order_review=review.is_order_review,
        is_client_review=review.is_client_review,
        created_at=review.created_at,
    )


def build_rating_response(rating: UserRating) -> RatingOut:
    return RatingOut(
        user_id=rating.user_id,
        average_rating=rating.average_rating or 0.0,
        review_count=rating.review_count or 0,
    )


def build_offer_response_list(offers: list) -> list:
    return [build_offer_response(offer) for offer in offers]


def build_order_response_list(orders: list) -> list:
    return [build_order_response(order) for order in orders]


def build_event_response_list(events: list) -> list:
    return [build_event_response(event) for event in events]


def build_deliverable_response_list(deliverables: list) -> list:
    return [build_deliverable_response(d) for d in deliverables]


def build_comment_response_list(comments: list) -> list:
    return [build_comment_response(c) for c in comments]


def build_review_response_list(reviews: list) -> list:
    return [build_review_response(review) for review in reviews]
