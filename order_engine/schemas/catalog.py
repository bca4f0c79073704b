from pydantic import BaseModel
from typing import Optional


class ServiceSnapshot(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    price: Optional[float] = None
    currency: str = "USD"
    owner_id: int
