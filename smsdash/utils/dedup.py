"""
Webhook delivery dedup - Redis-based with 30-minute window.
Telnyx retries a webhook until it gets a 2xx; retries of an envelope we already
processed are acknowledged without running the pipeline again.
"""
import logging

logger = logging.getLogger(__name__)

# Dedup window in seconds (30 minutes)
DEDUP_WINDOW_SECONDS = 1800

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from smsdash.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


def make_event_key(event_id: str) -> str:
    return f"smsdash:webhook:{event_id}"


async def is_duplicate_event(event_id: str) -> bool:
    """
    True if this webhook envelope id was seen within the window.
    If not, marks it so the next delivery is treated as a duplicate.
    """
    if not event_id:
        return False

    try:
        redis = await get_redis()
        # SET NX = only set if not exists. Returns True if set (new), None if exists (dupe).
        was_set = await redis.set(make_event_key(event_id), "1", nx=True, ex=DEDUP_WINDOW_SECONDS)
        if was_set:
            return False
        logger.info("Duplicate webhook delivery: %s", event_id)
        return True
    except Exception as e:
        # Redis failure must not block webhook processing - assume not duplicate
        logger.warning("Redis dedup check failed: %s. Assuming not duplicate.", str(e))
        return False


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
    _redis_client = None
