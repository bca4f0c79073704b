import logging
from functools import wraps
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession
from order_engine.models.audit import Audit
from order_engine.utils.hashing import payload_hash

logger = logging.getLogger(__name__)


def audit_log(endpoint_name: str) -> Callable:
    """Record who called a mutating endpoint and a hash of what they sent.

    Runs after the wrapped handler has returned, so only successful calls
    leave an audit row.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            result = await func(*args, **kwargs)

            db: AsyncSession = kwargs.get("db")
            caller = kwargs.get("caller")

            if not db or not caller:
                return result

            try:
                payload = kwargs.get("payload")

                if hasattr(payload, "model_dump"):
                    payload_dict = payload.model_dump(exclude_unset=True, mode="json")
                elif isinstance(payload, dict):
                    payload_dict = payload
                else:
                    payload_dict = {}

                for key in ("offer_id", "order_id", "dispute_id"):
                    if key in kwargs:
                        payload_dict = {**payload_dict, key: kwargs[key]}

                db.add(Audit(
                    user_id=caller.id,
                    endpoint=str(endpoint_name),
                    payload_hash=payload_hash(payload_dict),
                ))
                await db.commit()

            except Exception as e:
                await db.rollback()
                logger.error(f"Audit logging failed for {endpoint_name}: {e}", exc_info=True)

            return result

        return wrapper
    return decorator
