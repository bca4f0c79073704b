from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Integer, String, Text

from order_engine.core.enums import DisputeStatus, UserRole
from order_engine.models.base import BaseModel


class Dispute(BaseModel):
    __tablename__ = "disputes"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    client_id = Column(Integer, nullable=False, index=True)
    freelancer_id = Column(Integer, nullable=False, index=True)
    opened_by = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    attachments = Column(JSON, nullable=False, default=list)
    status = Column(Enum(DisputeStatus), default=DisputeStatus.OPEN, nullable=False)
    admin_resolution = Column(Text, nullable=True)
    resolved_by = Column(Integer, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)


class DisputeComment(BaseModel):
    __tablename__ = "dispute_comments"

    dispute_id = Column(ForeignKey("disputes.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    role = Column(Enum(UserRole), nullable=False)
    content = Column(Text, nullable=False)
    attachments = Column(JSON, nullable=False, default=list)
