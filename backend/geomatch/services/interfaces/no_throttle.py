"""
No-op throttle - every location update is broadcast.
"""

from geomatch.services.interfaces.throttle import LocationThrottle


class NoThrottle(LocationThrottle):
    """
    No admission control - always broadcast.

    Use when:
    - Clients already pace their own updates
    - Small deployments
    """

    async def allow(self, connection_id: str) -> bool:
        """Always admit."""
        return True
