from geomatch.models.enums import RequestStatus, Role, opposite_role, transition
from geomatch.models.identity import Identity
from geomatch.models.booking_request import BookingRequest

__all__ = ["Identity", "BookingRequest", "Role", "RequestStatus", "opposite_role", "transition"]
