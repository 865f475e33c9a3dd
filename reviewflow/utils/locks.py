"""
Redis per-row locks - one scheduler at a time may send for a review request row.
Uses Redis SET NX with TTL so a crashed worker's lock expires on its own.
The row's version column is the second line of defence if Redis is unavailable.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

LOCK_TTL_SECONDS = 60
LOCK_WAIT_SECONDS = 0
LOCK_POLL_INTERVAL = 0.1

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout."""
    pass


@asynccontextmanager
async def request_lock(
    request_status_id: str,
    ttl: int = LOCK_TTL_SECONDS,
    wait: float = LOCK_WAIT_SECONDS,
):
    """
    Hold the send lock for one review request row.

    Usage:
        async with request_lock(str(status.id)):
            # dispatch + mark stage sent
    """
    lock_key = f"reviewflow:lock:request:{request_status_id}"
    lock_value = uuid.uuid4().hex

    acquired = False
    try:
        acquired = await _acquire_lock(lock_key, lock_value, ttl, wait)
        if not acquired:
            raise LockTimeoutError(f"Request {request_status_id[:8]} is locked by another worker")
        yield
    finally:
        if acquired:
            await _release_lock(lock_key, lock_value)


async def _acquire_lock(key: str, value: str, ttl: int, wait: float) -> bool:
    try:
        from reviewflow.utils.dedup import get_redis
        redis = await get_redis()

        if await redis.set(key, value, nx=True, ex=ttl):
            return True

        elapsed = 0.0
        while elapsed < wait:
            await asyncio.sleep(LOCK_POLL_INTERVAL)
            elapsed += LOCK_POLL_INTERVAL
            if await redis.set(key, value, nx=True, ex=ttl):
                return True

        return False
    except Exception as e:
        # Optimistic version check still guards the row
        logger.warning("Redis lock error for %s: %s. Proceeding without lock.", key, str(e))
        return True


async def _release_lock(key: str, value: str) -> None:
    """Compare-and-delete so we only release our own lock."""
    try:
        from reviewflow.utils.dedup import get_redis
        redis = await get_redis()
        await redis.eval(_RELEASE_SCRIPT, 1, key, value)
    except Exception as e:
        logger.warning("Redis lock release error for %s: %s", key, str(e))
