import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tixledger.core.config import settings
from tixledger.core.database import engine
from tixledger.schemas.common import HealthResponse

router = APIRouter(tags=["health"])
logger = structlog.get_logger()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    db_status = "ok"
    broker_status = "ok"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("health.database_unreachable", exc_info=True)
        db_status = "error"

    try:
        r = aioredis.from_url(settings.CELERY_BROKER_URL)
        try:
            await r.ping()
        finally:
            await r.aclose()
    except (RedisError, OSError):
        logger.warning("health.broker_unreachable", exc_info=True)
        broker_status = "error"

    overall = "ok" if db_status == "ok" and broker_status == "ok" else "degraded"
    return HealthResponse(status=overall, database=db_status, broker=broker_status)
