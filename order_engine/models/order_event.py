from sqlalchemy import JSON, Column, Enum, ForeignKey, Integer, Text

from order_engine.core.enums import OrderEventType
from order_engine.models.base import BaseModel


class OrderEvent(BaseModel):
    """Append-only audit entry. Rows are never updated or deleted."""
    __tablename__ = "order_events"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    event_type = Column(Enum(OrderEventType), nullable=False)
    description = Column(Text, nullable=False)
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)
