"""
Redis client plus service-event deduplication.
A check-in submitted twice (double tap, client retry) must not start two review sequences.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEDUP_WINDOW_SECONDS = 86400  # 24 hours

_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from reviewflow.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


def make_event_key(company_id: int, check_in_id: Optional[int], customer_contact: str) -> str:
    """Stable key for one service event; falls back to the contact when there is no check-in."""
    raw = f"{company_id}:{check_in_id or ''}:{customer_contact.lower()}"
    hash_val = hashlib.sha256(raw.encode()).hexdigest()[:16]
    return f"reviewflow:dedup:event:{hash_val}"


async def is_duplicate_event(company_id: int, check_in_id: Optional[int], customer_contact: str) -> bool:
    """
    True if this service event was already seen inside the dedup window.
    Marks it as seen otherwise. Redis failures never block request creation.
    """
    key = make_event_key(company_id, check_in_id, customer_contact)
    try:
        redis = await get_redis()
        was_set = await redis.set(key, "1", nx=True, ex=DEDUP_WINDOW_SECONDS)
        if was_set:
            return False
        logger.info(
            "Duplicate service event: company=%s check_in=%s", company_id, check_in_id,
        )
        return True
    except Exception as e:
        logger.warning("Redis dedup check failed: %s. Assuming not duplicate.", str(e))
        return False
