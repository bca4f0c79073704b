from sqlalchemy import Column, DateTime, Enum, Float, Integer, String, Text

from order_engine.core.enums import OfferStatus
from order_engine.models.base import BaseModel


class Offer(BaseModel):
    __tablename__ = "offers"

    service_id = Column(Integer, nullable=False, index=True)
    client_id = Column(Integer, nullable=False, index=True)
    freelancer_id = Column(Integer, nullable=False, index=True)
    conversation_id = Column(Integer, nullable=True, index=True)

    status = Column(Enum(OfferStatus), default=OfferStatus.PENDING, nullable=False)
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    delivery_time_days = Column(Integer, nullable=False)
    revisions_included = Column(Integer, nullable=False, default=0)
    scope_of_work = Column(Text, nullable=True)
    cancellation_policy = Column(Text, nullable=False)

    # frozen catalog snapshot
    service_title = Column(String(255), nullable=False)
    service_description = Column(Text, nullable=True)

    # denormalized pointer, agrees with status == ACCEPTED
    order_id = Column(Integer, nullable=True, unique=True)
    rejection_reason = Column(Text, nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
