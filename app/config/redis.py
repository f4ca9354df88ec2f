# app/config/redis.py
"""Redis clients for the Celery broker and result backend"""
import redis.asyncio as redis
from typing import Dict, Optional

from app.config.settings import get_settings

settings = get_settings()

# One pool per URL; broker and result backend live in separate databases
_redis_pools: Dict[str, redis.ConnectionPool] = {}


def get_redis_pool(url: str) -> redis.ConnectionPool:
    """Get or create the connection pool for ``url``"""
    pool = _redis_pools.get(url)
    if pool is None:
        pool = redis.ConnectionPool.from_url(
            url,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            retry_on_timeout=True,
        )
        _redis_pools[url] = pool
    return pool


async def get_redis(url: Optional[str] = None) -> redis.Redis:
    """Redis client for ``url``, the Celery broker by default"""
    return redis.Redis(connection_pool=get_redis_pool(url or settings.CELERY_BROKER_URL))


# Checked by /health/detailed; calendar sync stalls if either is down
QUEUE_REDIS_URLS = {
    "broker": settings.CELERY_BROKER_URL,
    "result_backend": settings.CELERY_RESULT_BACKEND,
}
