"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .throttle import LocationThrottle
from .no_throttle import NoThrottle

__all__ = ['LocationThrottle', 'NoThrottle']
