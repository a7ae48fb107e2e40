"""
Presence read endpoints. Live updates go over the websocket; these are
for dashboards and debugging.
"""

from fastapi import APIRouter, Depends, Query

from geomatch.api.deps import get_store
from geomatch.infrastructure.store import CoordinationStore
from geomatch.models.enums import Role
from geomatch.schemas.presence import IdentityResponse

router = APIRouter(prefix="/presence", tags=["Presence"])


@router.get("/", response_model=list[IdentityResponse])
async def list_presence(
    role: Role = Query(...),
    store: CoordinationStore = Depends(get_store),
):
    """Identities of a role that have shared a location."""
    return await store.list_located(role.value)
