"""
Error taxonomy for the coordination engine.

Every error carries a stable ``code`` (the error class) and an optional
``reason`` that lets clients tell apart failures of the same class, e.g. a
lost accept race (``already_handled``) from a second active request
(``active_request_exists``). Errors are always reported to the triggering
connection only.
"""

from typing import Optional


class CoordinationError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str, reason: Optional[str] = None):
        self.message = message
        self.reason = reason
        super().__init__(message)

    def to_payload(self) -> dict:
        payload = {"message": self.message, "code": self.code}
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ValidationError(CoordinationError):
    """Malformed role, name, coordinates or event payload."""

    code = "validation_error"
    status_code = 400


class NotFoundError(CoordinationError):
    """Unknown identity or booking request."""

    code = "not_found"
    status_code = 404


class ForbiddenError(CoordinationError):
    """Caller is not allowed to perform the transition."""

    code = "forbidden"
    status_code = 403


class ConflictError(CoordinationError):
    """Lost race, request already handled, or a second active request."""

    code = "conflict"
    status_code = 409


class IllegalTransitionError(ConflictError):
    pass


class PersistenceError(CoordinationError):
    """Store unavailable. Message is kept generic for clients."""

    code = "persistence_error"
    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable", reason: Optional[str] = None):
        super().__init__(message, reason)


# Reasons
ALREADY_HANDLED = "already_handled"
ACTIVE_REQUEST_EXISTS = "active_request_exists"
ROLE_LOCKED = "role_locked"
ROLE_MISMATCH = "role_mismatch"
NOT_REQUESTER = "not_requester"
NOT_PARTICIPANT = "not_participant"
