"""
Connection registry: binds live connections to identities.

The registry is the only owner of identity rows. It is keyed by the
transport's connection id and knows nothing about the transport's socket
objects.
"""

from typing import Optional

from geomatch.core.exceptions import ROLE_LOCKED, ConflictError, NotFoundError
from geomatch.core.logging import get_logger
from geomatch.infrastructure.store import CoordinationStore, RemovalResult
from geomatch.models.enums import Role
from geomatch.models.identity import Identity

logger = get_logger(__name__)


class ConnectionRegistry:
    def __init__(self, store: CoordinationStore):
        self.store = store

    async def register(self, connection_id: str, role: Role, name: str) -> Identity:
        """
        Upsert the identity for a connection.
        Re-selecting the same role refreshes the name; switching role is rejected.
        """
        identity = await self.store.upsert_identity(connection_id, Role(role).value, name)
        if identity.role != Role(role).value:
            logger.warning(
                "role_change_rejected",
                current_role=identity.role,
                requested_role=Role(role).value,
            )
            raise ConflictError(
                f"Role already selected as {identity.role}",
                reason=ROLE_LOCKED,
            )
        logger.info("role_selected", role=identity.role, name=identity.name)
        return identity

    async def update_location(
        self,
        connection_id: str,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
    ) -> Identity:
        identity = await self.store.update_location(connection_id, latitude, longitude, accuracy)
        if identity is None:
            raise NotFoundError("Select a role before sharing your location")
        logger.debug("location_updated", latitude=latitude, longitude=longitude)
        return identity

    async def remove(self, connection_id: str) -> RemovalResult:
        result = await self.store.remove_identity(connection_id)
        logger.info(
            "identity_removed",
            had_identity=result.identity is not None,
            cancelled_requests=result.request_ids,
        )
        return result

    async def get_by_role(self, role: Role) -> list[Identity]:
        return await self.store.list_located(Role(role).value)

    async def get(self, connection_id: str) -> Optional[Identity]:
        return await self.store.get_identity(connection_id)

    async def get_all_by_role(self, role: Role) -> list[Identity]:
        """Every identity of a role, located or not."""
        return await self.store.list_identities(Role(role).value)
