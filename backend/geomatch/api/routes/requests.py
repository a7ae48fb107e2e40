"""
Booking request history endpoints.
"""

from fastapi import APIRouter, Depends

from geomatch.api.deps import get_store
from geomatch.core.exceptions import NotFoundError
from geomatch.infrastructure.store import CoordinationStore
from geomatch.schemas.booking import BookingRequestResponse

router = APIRouter(prefix="/requests", tags=["Requests"])


@router.get("/{request_id}", response_model=BookingRequestResponse)
async def get_request_endpoint(
    request_id: int,
    store: CoordinationStore = Depends(get_store),
):
    """Get a booking request by ID, including terminal ones."""
    request = await store.get_request(request_id)
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")
    return request
