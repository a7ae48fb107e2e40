from geomatch.schemas.presence import (
    GetLocationsPayload,
    IdentityResponse,
    LocationUpdatePayload,
    SelectRolePayload,
)
from geomatch.schemas.booking import (
    BookingRequestResponse,
    CreateRequestPayload,
    RequestActionPayload,
)

__all__ = [
    "SelectRolePayload", "LocationUpdatePayload", "GetLocationsPayload", "IdentityResponse",
    "CreateRequestPayload", "RequestActionPayload", "BookingRequestResponse",
]
