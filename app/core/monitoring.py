"""Health checks and monitoring endpoints"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from redis.exceptions import RedisError

from app.config.database import check_database, get_db
from app.config.redis import QUEUE_REDIS_URLS, get_redis

logger = logging.getLogger(__name__)

health_router = APIRouter()


@health_router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "booking-scheduler"}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """
    Detailed health check.
    Bookings need the database; calendar mirroring also needs the Celery
    broker and result backend, so a Redis outage only degrades sync.
    """
    checks = {
        "api": "healthy",
        "database": "unknown",
        "overall": "unknown"
    }

    # Check database
    try:
        check_database(db)
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        checks["database"] = f"unhealthy: {str(e)}"

    # Check the Celery Redis instances
    for name, url in QUEUE_REDIS_URLS.items():
        try:
            redis_client = await get_redis(url)
            await redis_client.ping()
            checks[name] = "healthy"
            await redis_client.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Redis {name} health check failed: {e}")
            checks[name] = f"unhealthy: {str(e)}"

    # Overall status
    if checks["database"] != "healthy":
        checks["overall"] = "unhealthy"
    elif all(status == "healthy" for status in checks.values() if status != "unknown"):
        checks["overall"] = "healthy"
    else:
        checks["overall"] = "degraded"

    return checks
