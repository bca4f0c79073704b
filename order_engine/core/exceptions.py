"""Error taxonomy raised by the engine.

Every error carries a stable ``kind`` and an HTTP-style ``status_code`` so the
boundary layer can map it without parsing messages.
"""


class OrderEngineError(Exception):
    kind = "error"
    status_code = 400
    default_detail = "Request could not be processed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.detail}


class Unauthorized(OrderEngineError):
    kind = "unauthorized"
    status_code = 403
    default_detail = "You are not a party to this resource"


class NotFound(OrderEngineError):
    kind = "not_found"
    status_code = 404
    default_detail = "Resource not found"


class InvalidState(OrderEngineError):
    kind = "invalid_state"
    status_code = 409
    default_detail = "Operation not allowed in the current state"


class AlreadyAccepted(OrderEngineError):
    kind = "already_accepted"
    status_code = 409
    default_detail = "Offer already accepted - order already exists"


class DisputeAlreadyOpen(OrderEngineError):
    kind = "dispute_already_open"
    status_code = 409
    default_detail = "An active dispute already exists for this order"


class AlreadyReviewed(OrderEngineError):
    kind = "already_reviewed"
    status_code = 409
    default_detail = "You have already reviewed this order"


class InvalidPrice(OrderEngineError):
    kind = "invalid_price"
    status_code = 422
    default_detail = "Price must be set and greater than 0"


class RevisionLimitExceeded(OrderEngineError):
    kind = "revision_limit_exceeded"
    status_code = 422
    default_detail = "No revisions left"


class ResolutionRequired(OrderEngineError):
    kind = "resolution_required"
    status_code = 422
    default_detail = "adminResolution is required when resolving a dispute"


class InvalidReview(OrderEngineError):
    kind = "invalid_review"
    status_code = 422
    default_detail = "Review is not valid"


class Conflict(OrderEngineError):
    kind = "conflict"
    status_code = 409
    default_detail = "Resource was modified concurrently, re-fetch and try again"


class CatalogUnavailable(OrderEngineError):
    kind = "catalog_unavailable"
    status_code = 502
    default_detail = "Service catalog is unavailable"
