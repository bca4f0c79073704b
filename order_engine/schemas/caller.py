from pydantic import BaseModel

from order_engine.core.enums import UserRole


class Caller(BaseModel):
    """Already-authenticated identity passed into every engine call."""
    id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
