"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import close_redis, get_redis, get_redis_stats
from .store import CoordinationStore, RemovalResult

__all__ = ['get_redis', 'close_redis', 'get_redis_stats', 'CoordinationStore', 'RemovalResult']
