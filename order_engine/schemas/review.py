from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ReviewCreate(BaseModel):
    order_id: Optional[int] = None
    service_id: Optional[int] = None
    reviewee_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    is_order_review: bool = True
    is_client_review: Optional[bool] = None


class ReviewOut(BaseModel):
    id: int
    order_id: Optional[int] = None
    service_id: Optional[int] = None
    reviewer_id: int
    reviewee_id: int
    rating: int
    comment: Optional[str] = None
    is_order_review: bool
    is_client_review: Optional[bool] = None
    created_at: datetime


class ReviewEligibility(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    as_client: Optional[bool] = None


class RatingOut(BaseModel):
    user_id: int
    average_rating: float
    review_count: int
