from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime

from order_engine.core.config import settings
from order_engine.core.enums import DisputeStatus, OrderAction, UserRole


class DisputeCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=settings.DISPUTE_MIN_DESCRIPTION_LENGTH)
    attachments: List[str] = []


class DisputeResolve(BaseModel):
    status: DisputeStatus
    admin_resolution: Optional[str] = None
    order_action: OrderAction = OrderAction.NONE


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    attachments: List[str] = []


class DisputeOut(BaseModel):
    id: int
    order_id: int
    client_id: int
    freelancer_id: int
    opened_by: int
    reason: str
    description: str
    attachments: List[str]
    status: DisputeStatus
    admin_resolution: Optional[str] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class CommentOut(BaseModel):
    id: int
    dispute_id: int
    user_id: int
    role: UserRole
    content: str
    attachments: List[str]
    created_at: datetime


class DisputeListOut(BaseModel):
    disputes: List[DisputeOut]
    metrics: Optional[Dict[str, int]] = None
