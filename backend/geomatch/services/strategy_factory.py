"""
Location throttle factory.
Configures which broadcast admission strategy to use.
"""

from typing import Optional

from geomatch.core.config import Settings, get_settings
from geomatch.infrastructure.redis_client import get_redis
from geomatch.services.interfaces.no_throttle import NoThrottle
from geomatch.services.interfaces.throttle import LocationThrottle
from geomatch.services.throttle_service import MemoryThrottle, RedisThrottle


def get_location_throttle(settings: Optional[Settings] = None) -> LocationThrottle:
    """
    Get configured throttle strategy.

    Strategy selection via LOCATION_THROTTLE:
    - none: NoThrottle (default)
    - memory: MemoryThrottle (single worker)
    - redis: RedisThrottle (multiple workers)
    """
    settings = settings or get_settings()
    strategy = settings.LOCATION_THROTTLE

    if strategy == "redis":
        return RedisThrottle(settings.LOCATION_THROTTLE_MS, get_redis)
    if strategy == "memory":
        return MemoryThrottle(settings.LOCATION_THROTTLE_MS)
    return NoThrottle()
