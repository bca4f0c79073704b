"""Authorization helpers shared by the engine services"""
from typing import Optional

from order_engine.core.enums import UserRole
from order_engine.core.exceptions import NotFound, Unauthorized
from order_engine.schemas.caller import Caller


def check_not_found(item, resource_name: str = "Resource", resource_id: Optional[int] = None) -> None:

    if not item:
        if resource_id:
            raise NotFound(f"{resource_name} with id {resource_id} not found")
        raise NotFound(f"{resource_name} not found")


def is_party(item, caller: Caller) -> bool:
    return caller.id in (item.client_id, item.freelancer_id)


def check_party(item, caller: Caller, resource_name: str = "Resource", allow_admin: bool = True) -> None:

    if allow_admin and caller.role == UserRole.ADMIN:
        return
    if not is_party(item, caller):
        raise Unauthorized(f"Unauthorized: you are not part of this {resource_name.lower()}")


def check_client(item, caller: Caller, resource_name: str = "Resource") -> None:

    if item.client_id != caller.id:
        raise Unauthorized(f"Unauthorized: only the client can do this on the {resource_name.lower()}")


def check_freelancer(item, caller: Caller, resource_name: str = "Resource") -> None:

    if item.freelancer_id != caller.id:
        raise Unauthorized(f"Unauthorized: only the freelancer can do this on the {resource_name.lower()}")


def check_admin(caller: Caller) -> None:

    if caller.role != UserRole.ADMIN:
        raise Unauthorized("Admin access required")
