import time
import logging

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

# Seconds to wait before trying an unreachable Redis again
RECONNECT_BACKOFF_SECONDS = 30

_client = None
_last_failure = None


def get_redis():
    """
    Shared Redis client, or None when REDIS_URL is empty or the server was
    unreachable within the last RECONNECT_BACKOFF_SECONDS.
    """
    global _client, _last_failure

    if not settings.REDIS_URL:
        return None
    if _client is not None:
        return _client
    if _last_failure is not None and time.monotonic() - _last_failure < RECONNECT_BACKOFF_SECONDS:
        return None

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis unreachable ({e}); rate limiting falls back to in-memory counters")
        _last_failure = time.monotonic()
        return None

    logger.info("Connected to Redis")
    _client = client
    _last_failure = None
    return _client


def close_redis():
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("Disconnected from Redis")
