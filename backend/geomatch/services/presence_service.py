"""
Presence broadcaster.

Presence sharing is role-scoped: a location update reaches only located
identities of the opposite role, one point-to-point push each. Departure
is announced to every other connection by default so all peers can prune
stale markers; OFFLINE_BROADCAST_SCOPE=opposite_role narrows it.
"""

from typing import Optional

from geomatch.core.exceptions import NotFoundError
from geomatch.core.logging import get_logger
from geomatch.core.metrics import record_throttle
from geomatch.models.enums import Role, opposite_role
from geomatch.models.identity import Identity
from geomatch.realtime import events
from geomatch.realtime.transport import Transport
from geomatch.services.interfaces.throttle import LocationThrottle
from geomatch.services.interfaces.no_throttle import NoThrottle
from geomatch.services.registry_service import ConnectionRegistry

logger = get_logger(__name__)


def location_payload(identity: Identity) -> dict:
    return {
        "id": identity.connection_id,
        "name": identity.name,
        "role": identity.role,
        "latitude": identity.latitude,
        "longitude": identity.longitude,
        "accuracy": identity.accuracy,
    }


def snapshot_entry(identity: Identity) -> dict:
    entry = location_payload(identity)
    entry["last_seen"] = identity.last_seen.isoformat() if identity.last_seen else None
    return entry


class PresenceBroadcaster:
    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: Transport,
        throttle: Optional[LocationThrottle] = None,
        offline_scope: str = "all",
    ):
        self.registry = registry
        self.transport = transport
        self.throttle = throttle or NoThrottle()
        self.offline_scope = offline_scope

    async def share_location(self, identity: Identity) -> int:
        """Push the identity's location to opposite-role peers. Returns delivered count."""
        allowed = await self.throttle.allow(identity.connection_id)
        record_throttle(allowed)
        if not allowed:
            logger.debug("location_broadcast_throttled")
            return 0

        targets = await self.registry.get_by_role(opposite_role(identity.role))
        target_ids = [t.connection_id for t in targets if t.connection_id != identity.connection_id]
        delivered = await self.transport.send_many(
            target_ids, events.LOCATION_SHARED, location_payload(identity)
        )
        logger.info(
            "location_shared",
            role=identity.role,
            targets=len(target_ids),
            delivered=delivered,
        )
        return delivered

    async def send_snapshot(self, connection_id: str, role: Optional[Role] = None) -> list[dict]:
        """
        Push one locations-data snapshot of the opposite of ``role`` to the caller.
        Without ``role`` the caller's own registered role is used.
        """
        if role is None:
            identity = await self.registry.get(connection_id)
            if identity is None:
                raise NotFoundError("Select a role before requesting locations")
            role = Role(identity.role)

        located = await self.registry.get_by_role(opposite_role(role))
        snapshot = [snapshot_entry(i) for i in located if i.connection_id != connection_id]
        await self.transport.send(connection_id, events.LOCATIONS_DATA, snapshot)
        logger.info("snapshot_sent", role=opposite_role(role).value, entries=len(snapshot))
        return snapshot

    async def announce_departure(self, connection_id: str, role: Optional[str] = None) -> int:
        payload = {"id": connection_id}
        if self.offline_scope == "opposite_role" and role is not None:
            peers = await self.registry.get_all_by_role(opposite_role(role))
            delivered = await self.transport.send_many(
                [p.connection_id for p in peers if p.connection_id != connection_id],
                events.USER_OFFLINE,
                payload,
            )
        else:
            delivered = await self.transport.broadcast(
                events.USER_OFFLINE, payload, exclude=[connection_id]
            )
        logger.info("departure_announced", scope=self.offline_scope, delivered=delivered)
        return delivered
