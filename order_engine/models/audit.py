from sqlalchemy import Column, Integer, String

from order_engine.models.base import BaseModel


class Audit(BaseModel):
    __tablename__ = "audits"

    user_id = Column(Integer, nullable=False, index=True)

    endpoint = Column(String(255), nullable=False)
    payload_hash = Column(String(128), nullable=False)
