from enum import Enum


class UserRole(str, Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"
    ADMIN = "admin"

    def __str__(self):
        return self.value


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    def __str__(self):
        return self.value


class OrderStatus(str, Enum):
    PENDING_ACCEPTANCE = "pending_acceptance"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    REVISION_REQUESTED = "revision_requested"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"

    def __str__(self):
        return self.value


class ContractStatus(str, Enum):
    ACTIVE = "active"
    DISPUTED = "disputed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def __str__(self):
        return self.value


class DisputeStatus(str, Enum):
    OPEN = "open"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    CLOSED = "closed"

    def __str__(self):
        return self.value


class OrderAction(str, Enum):
    REFUND_CLIENT = "refund_client"
    PAY_FREELANCER = "pay_freelancer"
    SPLIT = "split"
    NONE = "none"

    def __str__(self):
        return self.value


class DeliverableType(str, Enum):
    FILE = "file"
    LINK = "link"
    MESSAGE = "message"

    def __str__(self):
        return self.value


class OrderEventType(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_STARTED = "order_started"
    DELIVERY_SUBMITTED = "delivery_submitted"
    REVISION_REQUESTED = "revision_requested"
    DELIVERY_ACCEPTED = "delivery_accepted"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_REJECTED = "order_rejected"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_IN_REVIEW = "dispute_in_review"
    DISPUTE_RESOLVED = "dispute_resolved"

    def __str__(self):
        return self.value


class Signal(str, Enum):
    OFFER_CREATED = "offer.created"
    OFFER_ACCEPTED = "offer.accepted"
    OFFER_REJECTED = "offer.rejected"
    ORDER_STATUS_CHANGED = "order.status_changed"
    DISPUTE_OPENED = "dispute.opened"
    DISPUTE_RESOLVED = "dispute.resolved"
    REVIEW_SUBMITTED = "review.submitted"

    def __str__(self):
        return self.value


class AuditAction(str, Enum):
    CREATE_OFFER = "create_offer"
    ACCEPT_OFFER = "accept_offer"
    REJECT_OFFER = "reject_offer"
    START_ORDER = "start_order"
    SUBMIT_DELIVERY = "submit_delivery"
    REQUEST_REVISION = "request_revision"
    ACCEPT_DELIVERY = "accept_delivery"
    CANCEL_ORDER = "cancel_order"
    REJECT_ORDER = "reject_order"
    OPEN_DISPUTE = "open_dispute"
    COMMENT_DISPUTE = "comment_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    SUBMIT_REVIEW = "submit_review"

    def __str__(self):
        return self.value
