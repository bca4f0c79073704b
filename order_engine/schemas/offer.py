from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from order_engine.core.enums import OfferStatus
from order_engine.schemas.order import OrderOut


class OfferCreate(BaseModel):
    service_id: int
    client_id: int
    conversation_id: Optional[int] = None
    delivery_time_days: Optional[int] = Field(None, ge=1)
    revisions_included: int = Field(0, ge=0)
    scope_of_work: Optional[str] = None
    cancellation_policy: Optional[str] = None
    price: Optional[float] = None


class OfferReject(BaseModel):
    rejection_reason: Optional[str] = None


class OfferOut(BaseModel):
    id: int
    service_id: int
    client_id: int
    freelancer_id: int
    conversation_id: Optional[int] = None
    status: OfferStatus
    price: float
    currency: str
    delivery_time_days: int
    revisions_included: int
    scope_of_work: Optional[str] = None
    cancellation_policy: str
    service_title: str
    service_description: Optional[str] = None
    order_id: Optional[int] = None
    rejection_reason: Optional[str] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: datetime


class OfferAcceptOut(BaseModel):
    offer: OfferOut
    order: OrderOut
