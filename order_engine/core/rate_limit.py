import logging
from fastapi import HTTPException
from order_engine.core.redis import get_redis
from order_engine.core.config import settings
from order_engine.core.metrics import rate_limit_exceeded

logger = logging.getLogger(__name__)

async def check_rate_limit(user_id: int):
    redis = get_redis()
    if redis is None:
        # no redis, no limiting
        return
    key = f"rl:{user_id}"
    current = await redis.get(key)
    if current is None:
        await redis.set(key, "1", ex=settings.RATE_LIMIT_WINDOW)
        return
    count = int(current)
    if count >= settings.RATE_LIMIT:
        rate_limit_exceeded.labels(user_id=str(user_id)).inc()
        logger.warning(f"Rate limit exceeded for user {user_id}")
        raise HTTPException(status_code=429, detail="Rate limit exceeded")
    await redis.incr(key)
