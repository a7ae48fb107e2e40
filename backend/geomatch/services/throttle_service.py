"""
Location broadcast throttles.

Circuit Breaker Pattern:
  On Redis failure, RedisThrottle "fails open" (admits the broadcast).
  A Redis outage must never silence presence; it only removes rate limiting.
  The circuit gauge is flipped so the outage is visible on /metrics.
"""

import time
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from geomatch.core.logging import get_logger
from geomatch.core.metrics import redis_circuit_breaker_open, redis_connection_errors
from geomatch.services.interfaces.throttle import LocationThrottle

logger = get_logger(__name__)


class MemoryThrottle(LocationThrottle):
    """
    Per-connection minimum interval kept in process memory.

    Use when running a single worker.
    """

    def __init__(self, interval_ms: int, clock: Callable[[], float] = time.monotonic):
        self.interval = interval_ms / 1000.0
        self._clock = clock
        self._last: dict[str, float] = {}

    async def allow(self, connection_id: str) -> bool:
        now = self._clock()
        last = self._last.get(connection_id)
        if last is not None and now - last < self.interval:
            return False
        self._last[connection_id] = now
        return True

    async def forget(self, connection_id: str) -> None:
        self._last.pop(connection_id, None)


class RedisThrottle(LocationThrottle):
    """
    Per-connection minimum interval in Redis, shared by all workers.

    Strategy: SET throttle:location:<id> 1 NX PX <interval>. The key exists
    for exactly one interval after an admitted broadcast; a second update
    inside that window finds the key and is suppressed.
    """

    KEY_PREFIX = "throttle:location:"

    def __init__(
        self,
        interval_ms: int,
        client_factory: Callable[[], Awaitable[Optional[redis.Redis]]],
    ):
        self.interval_ms = interval_ms
        self._client_factory = client_factory

    async def allow(self, connection_id: str) -> bool:
        try:
            client = await self._client_factory()
            if client is None:
                # Redis disabled or unreachable: fail open
                redis_circuit_breaker_open.set(1)
                return True
            admitted = await client.set(
                f"{self.KEY_PREFIX}{connection_id}", "1", nx=True, px=self.interval_ms
            )
            redis_circuit_breaker_open.set(0)
            return bool(admitted)
        except Exception as e:
            redis_connection_errors.inc()
            redis_circuit_breaker_open.set(1)
            logger.warning("throttle_redis_error", error=str(e))
            return True

    async def forget(self, connection_id: str) -> None:
        try:
            client = await self._client_factory()
            if client is not None:
                await client.delete(f"{self.KEY_PREFIX}{connection_id}")
        except Exception as e:
            # Key expires on its own after one interval
            logger.debug("throttle_forget_failed", error=str(e))
