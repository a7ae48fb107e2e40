"""
Location broadcast throttle interface.
Allows swapping between different admission strategies for presence fan-out.
"""

from abc import ABC, abstractmethod


class LocationThrottle(ABC):
    """
    Interface for location broadcast admission.

    A throttled update is still persisted; only its fan-out to
    opposite-role peers is skipped. Snapshots therefore always show the
    latest location.

    Implementations:
    - NoThrottle: every update is broadcast
    - MemoryThrottle: per-connection minimum interval, single process
    - RedisThrottle: per-connection minimum interval shared across workers
    """

    @abstractmethod
    async def allow(self, connection_id: str) -> bool:
        """
        Check if this connection's location update should be broadcast.

        Args:
            connection_id: Connection that sent the update

        Returns:
            True if admitted (broadcast now)
            False if suppressed (too soon after the previous broadcast)
        """
        pass

    async def forget(self, connection_id: str) -> None:
        """Drop any state kept for a departed connection."""
        return None
