from sqlalchemy import Boolean, Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text

from order_engine.core.enums import DeliverableType, OrderStatus
from order_engine.models.base import BaseModel


class Order(BaseModel):
    __tablename__ = "orders"

    order_number = Column(String(32), unique=True, nullable=False, index=True)
    offer_id = Column(ForeignKey("offers.id"), unique=True, nullable=False)

    service_id = Column(Integer, nullable=False, index=True)
    client_id = Column(Integer, nullable=False, index=True)
    freelancer_id = Column(Integer, nullable=False, index=True)
    conversation_id = Column(Integer, nullable=True, index=True)

    status = Column(Enum(OrderStatus), default=OrderStatus.IN_PROGRESS, nullable=False)
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    delivery_time_days = Column(Integer, nullable=False)
    revisions_included = Column(Integer, nullable=False, default=0)
    revisions_used = Column(Integer, nullable=False, default=0)
    delivery_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    client_ip_address = Column(String(64), nullable=True)


class OrderDeliverable(BaseModel):
    __tablename__ = "order_deliverables"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    type = Column(Enum(DeliverableType), nullable=False, default=DeliverableType.MESSAGE)
    file_url = Column(String(1024), nullable=True)
    message = Column(Text, nullable=True)
    is_revision = Column(Boolean, nullable=False, default=False)
    revision_number = Column(Integer, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
