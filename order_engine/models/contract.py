from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text

from order_engine.core.enums import ContractStatus
from order_engine.models.base import BaseModel


class Contract(BaseModel):
    __tablename__ = "contracts"

    order_id = Column(ForeignKey("orders.id"), unique=True, nullable=False)

    service_title = Column(String(255), nullable=False)
    service_description = Column(Text, nullable=False, default="")
    scope_of_work = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    delivery_time_days = Column(Integer, nullable=False)
    revisions_included = Column(Integer, nullable=False)
    cancellation_policy = Column(Text, nullable=False)

    status = Column(Enum(ContractStatus), default=ContractStatus.ACTIVE, nullable=False)
    client_accepted_at = Column(DateTime(timezone=True), nullable=False)
    freelancer_accepted_at = Column(DateTime(timezone=True), nullable=True)
    client_ip_address = Column(String(64), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(Integer, nullable=True)
