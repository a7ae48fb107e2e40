"""Domain enumerations and state-transition rules."""

import enum

from geomatch.core.exceptions import IllegalTransitionError


class Role(str, enum.Enum):
    SEEKER = "seeker"
    PROVIDER = "provider"


def opposite_role(role: "Role | str") -> Role:
    return Role.PROVIDER if Role(role) == Role.SEEKER else Role.SEEKER


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return not REQUEST_TRANSITIONS[self]


# State machine: maps current status -> set of valid next statuses
REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {RequestStatus.ACCEPTED, RequestStatus.CANCELLED},
    RequestStatus.ACCEPTED: {RequestStatus.COMPLETED, RequestStatus.CANCELLED},
    RequestStatus.CANCELLED: set(),
    RequestStatus.COMPLETED: set(),
}

ACTIVE_STATUSES = (RequestStatus.PENDING.value, RequestStatus.ACCEPTED.value)


def transition(current: "RequestStatus | str", target: "RequestStatus | str") -> RequestStatus:
    """
    Validate a status change and return the new status.

    This only rejects moves that are illegal for any observer. Two handlers
    can both see ``pending`` and both pass this check; the store's
    conditional update decides which of them actually wins.
    """
    current, target = RequestStatus(current), RequestStatus(target)
    if target not in REQUEST_TRANSITIONS[current]:
        raise IllegalTransitionError(
            f"Cannot move request from {current.value} to {target.value}",
            reason="already_handled",
        )
    return target
