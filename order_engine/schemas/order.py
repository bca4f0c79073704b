from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime

from order_engine.core.enums import ContractStatus, DeliverableType, OrderEventType, OrderStatus


class DeliveryPayload(BaseModel):
    type: DeliverableType = DeliverableType.MESSAGE
    file_url: Optional[str] = None
    message: Optional[str] = None


class RevisionRequest(BaseModel):
    note: str = Field(..., min_length=1)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class OrderOut(BaseModel):
    id: int
    order_number: str
    offer_id: int
    service_id: int
    client_id: int
    freelancer_id: int
    conversation_id: Optional[int] = None
    status: OrderStatus
    price: float
    currency: str
    delivery_time_days: int
    revisions_included: int
    revisions_used: int
    delivery_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class DeliverableOut(BaseModel):
    id: int
    order_id: int
    type: DeliverableType
    file_url: Optional[str] = None
    message: Optional[str] = None
    is_revision: bool
    revision_number: Optional[int] = None
    delivered_at: datetime
    accepted_at: Optional[datetime] = None


class ContractOut(BaseModel):
    order_id: int
    service_title: str
    service_description: str
    scope_of_work: Optional[str] = None
    price: float
    currency: str
    delivery_time_days: int
    revisions_included: int
    cancellation_policy: str
    status: ContractStatus
    client_accepted_at: datetime
    freelancer_accepted_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[int] = None


class OrderEventOut(BaseModel):
    id: int
    order_id: int
    user_id: int
    event_type: OrderEventType
    description: str
    metadata: Dict[str, Any]
    created_at: datetime
