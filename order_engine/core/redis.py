import logging
from typing import Optional
from redis.asyncio import Redis
from order_engine.core.config import settings

logger = logging.getLogger(__name__)

redis: Optional[Redis] = None

async def init_redis() -> Redis:
    global redis
    try:
        redis = Redis.from_url(settings.REDIS_URL, decode_responses=False)
        await redis.ping()
        logger.info("Connected to Redis")
        return redis
    except Exception as e:
        redis = None
        logger.error(f"Failed to connect to Redis at {settings.REDIS_URL}: {e}")
        raise

async def close_redis():
    global redis
    if redis:
        await redis.close()
        redis = None

def get_redis() -> Optional[Redis]:
    """Shared client, or None while Redis is unavailable."""
    return redis


async def redis_healthy() -> bool:
    if redis is None:
        return False
    try:
        return bool(await redis.ping())
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
