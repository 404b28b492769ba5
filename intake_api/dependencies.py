import json
import logging
import uuid
from redis.asyncio import Redis
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, Tuple

from common.config import settings
from common.database import get_async_session
from common.repository import LeadRepository

logger = logging.getLogger("intake_api")


async def get_redis() -> Redis:
    """Dependency providing a Redis connection"""
    return await Redis.from_url(settings.REDIS_URL, decode_responses=True)


async def get_repository(db: AsyncSession = Depends(get_async_session)) -> LeadRepository:
    """Repository bound to the request's database session"""
    return LeadRepository(db)


async def verify_idempotency_key(
    redis: Redis,
    idempotency_key: uuid.UUID,
    current_request_data: Optional[dict] = None
) -> Tuple[bool, Optional[dict]]:
    """
    Checks the Idempotency-Key and returns:
    - (False, None): the key does not exist (new request)
    - (True, cached_data): the key exists (duplicate request)
    - Raise 409: the key exists but the data is different (conflict)
    """
    try:
        redis_key = f"idempotency:{idempotency_key}"
        cached_data_str = await redis.get(redis_key)

        if not cached_data_str:
            logger.debug(f"[idempotency] key={redis_key} not found")
            return False, None

        cached_data = json.loads(cached_data_str)

        if current_request_data is not None:
            cached_request_data = cached_data.get("request_data", {})
            if cached_request_data != current_request_data:
                logger.info(f"[idempotency] key={redis_key} reused with different data")
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Idempotency-Key already used with different data"
                )

        logger.info(f"[idempotency] key={redis_key} replayed")
        return True, cached_data

    except HTTPException:
        raise
    except Exception as e:
        logger.warning(f"[idempotency] lookup failed, treating as new request: {e}")
        return False, None
