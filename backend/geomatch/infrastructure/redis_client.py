"""
Redis connection lifecycle.

Redis is advisory in this service: it backs the location broadcast
throttle and nothing else. The store stays authoritative, so a missing or
failing Redis degrades throttling, never coordination.
"""

from typing import Optional

import redis.asyncio as redis

from geomatch.core.config import get_settings
from geomatch.core.logging import get_logger
from geomatch.core.metrics import redis_connection_errors

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled or down."""
    global _redis_client
    settings = get_settings()

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        try:
            await client.ping()
        except Exception as e:
            redis_connection_errors.inc()
            logger.error("redis_connection_failed", error=str(e))
            await client.aclose()
            return None
        _redis_client = client
        logger.info("redis_connected", url=settings.REDIS_URL)

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_redis_stats() -> dict:
    """Redis status for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        return {
            "status": "connected",
            "commands_processed": info.get("total_commands_processed", 0),
            "rejected_connections": info.get("rejected_connections", 0),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
