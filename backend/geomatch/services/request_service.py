"""
Booking request coordinator.

STATE MACHINE
=============

  pending ──accept──▶ accepted ──complete──▶ completed
     │                    │
     └──cancel──▶ cancelled ◀──disconnect/expiry

Each transition is checked twice:

  1. models.enums.transition() rejects moves that are illegal given the
     state this handler last read (e.g. accepting a cancelled request).
  2. The store's conditional UPDATE decides the race. Two handlers can
     both read 'pending' and both pass step 1; only one UPDATE matches.

Step 2 is authoritative. Step 1 only produces a clearer error earlier.

Every operation follows the same order: persist the transition, then read
the dependent state (names, coordinates), then push notifications.
"""

from datetime import datetime
from typing import Iterable, Optional

from geomatch.core.exceptions import (
    ACTIVE_REQUEST_EXISTS,
    ALREADY_HANDLED,
    NOT_PARTICIPANT,
    NOT_REQUESTER,
    ROLE_MISMATCH,
    ConflictError,
    CoordinationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from geomatch.core.logging import get_logger
from geomatch.core.metrics import record_transition
from geomatch.infrastructure.store import CoordinationStore
from geomatch.models.booking_request import BookingRequest
from geomatch.models.enums import RequestStatus, transition
from geomatch.models.identity import Identity
from geomatch.realtime import events
from geomatch.realtime.transport import Transport
from geomatch.services.registry_service import ConnectionRegistry

logger = get_logger(__name__)


def _coords(identity: Optional[Identity]) -> tuple[Optional[float], Optional[float]]:
    if identity is None:
        return None, None
    return identity.latitude, identity.longitude


class RequestCoordinator:
    def __init__(self, store: CoordinationStore, registry: ConnectionRegistry, transport: Transport):
        self.store = store
        self.registry = registry
        self.transport = transport

    # ---------------------- Create ----------------------

    async def create_request(self, requester_id: str, target_id: str) -> BookingRequest:
        """
        Open a pending request from ``requester_id`` to ``target_id``.

        Raises:
            NotFoundError: requester or target is not a live identity
            ValidationError: target is the requester or has the same role
            ConflictError: requester already has a pending/accepted request
        """
        requester = await self.registry.get(requester_id)
        if requester is None:
            raise self._reject("create", NotFoundError("Select a role before sending a request"))
        if target_id == requester_id:
            raise self._reject("create", ValidationError("You cannot send a request to yourself"))

        target = await self.registry.get(target_id)
        if target is None:
            raise self._reject("create", NotFoundError(f"Participant {target_id} is not online"))
        if target.role == requester.role:
            raise self._reject(
                "create",
                ValidationError("Requests must be sent to a participant of the other role"),
            )

        if await self.store.has_active_request(requester_id):
            raise self._reject(
                "create",
                ConflictError("You already have an active booking request", reason=ACTIVE_REQUEST_EXISTS),
            )

        try:
            request = await self.store.insert_request(requester_id, requester.role, target_id)
        except ConflictError as e:
            raise self._reject("create", e)

        record_transition("create", "success")
        logger.info("request_created", request_id=request.id, target_id=target_id)

        await self.transport.send(target_id, events.NEW_REQUEST, {
            "requestId": request.id,
            "requesterId": requester_id,
            "requesterName": requester.name,
            "requesterRole": requester.role,
            "requesterLat": requester.latitude,
            "requesterLng": requester.longitude,
        })
        await self.transport.send(requester_id, events.REQUEST_CREATED, {
            "requestId": request.id,
            "status": RequestStatus.PENDING.value,
            "targetId": target_id,
        })
        return request

    # ---------------------- Accept ----------------------

    async def accept_request(self, request_id: int, acceptor_id: str) -> BookingRequest:
        """
        Bind ``acceptor_id`` to a pending request. First accept wins.

        Raises:
            NotFoundError: unknown request, or acceptor has no identity
            ForbiddenError: acceptor is the requester or shares the requester's role
            ConflictError: request was already accepted or cancelled (already_handled)
        """
        request = await self.store.get_request(request_id)
        if request is None:
            raise self._reject("accept", NotFoundError(f"Request {request_id} not found"))

        acceptor = await self.registry.get(acceptor_id)
        if acceptor is None:
            raise self._reject("accept", NotFoundError("Select a role before accepting requests"))
        if acceptor_id == request.requester_id or acceptor.role == request.requester_role:
            raise self._reject(
                "accept",
                ForbiddenError("Only the other role can accept this request", reason=ROLE_MISMATCH),
            )

        try:
            transition(request.status, RequestStatus.ACCEPTED)
        except ConflictError as e:
            raise self._reject("accept", e)

        accepted = await self.store.accept_request(request_id, acceptor_id)
        if accepted is None:
            logger.info("accept_lost_race", request_id=request_id)
            raise self._reject(
                "accept",
                ConflictError("Request was already handled", reason=ALREADY_HANDLED),
            )

        record_transition("accept", "success")
        logger.info("request_accepted", request_id=request_id, requester_id=accepted.requester_id)

        parties = await self.store.get_identities([accepted.requester_id, acceptor_id])
        requester = parties.get(accepted.requester_id)
        acceptor = parties.get(acceptor_id, acceptor)
        requester_lat, requester_lng = _coords(requester)
        acceptor_lat, acceptor_lng = _coords(acceptor)

        await self.transport.send_many([accepted.requester_id, acceptor_id], events.REQUEST_ACCEPTED, {
            "requestId": accepted.id,
            "status": RequestStatus.ACCEPTED.value,
            "acceptorId": acceptor_id,
            "acceptorName": acceptor.name,
            "acceptorLat": acceptor_lat,
            "acceptorLng": acceptor_lng,
            "requesterId": accepted.requester_id,
            "requesterName": requester.name if requester else None,
            "requesterLat": requester_lat,
            "requesterLng": requester_lng,
        })
        return accepted

    # ---------------------- Cancel ----------------------

    async def cancel_request(self, request_id: int, caller_id: str) -> BookingRequest:
        """
        Cancel a pending request. Only the requester may cancel.

        Raises:
            NotFoundError: unknown request
            ForbiddenError: caller is not the requester
            ConflictError: request is no longer pending (already_handled)
        """
        cancelled = await self.store.cancel_request(request_id, caller_id)
        if cancelled is None:
            request = await self.store.get_request(request_id)
            if request is None:
                raise self._reject("cancel", NotFoundError(f"Request {request_id} not found"))
            if request.requester_id != caller_id:
                raise self._reject(
                    "cancel",
                    ForbiddenError("Only the requester can cancel this request", reason=NOT_REQUESTER),
                )
            raise self._reject(
                "cancel",
                ConflictError(f"Request is already {request.status}", reason=ALREADY_HANDLED),
            )

        record_transition("cancel", "success")
        logger.info("request_cancelled", request_id=request_id, reason="requester")

        await self.transport.send_many(
            [cancelled.requester_id, *cancelled.counterparts(cancelled.requester_id)],
            events.REQUEST_CANCELLED,
            {"requestId": cancelled.id, "reason": "requester"},
        )
        return cancelled

    # ---------------------- Complete ----------------------

    async def complete_request(self, request_id: int, caller_id: str) -> BookingRequest:
        """Close an accepted request. Either bound party may complete it."""
        completed = await self.store.complete_request(request_id, caller_id)
        if completed is None:
            request = await self.store.get_request(request_id)
            if request is None:
                raise self._reject("complete", NotFoundError(f"Request {request_id} not found"))
            if caller_id not in (request.requester_id, request.acceptor_id):
                raise self._reject(
                    "complete",
                    ForbiddenError("Only the requester or acceptor can complete this request",
                                   reason=NOT_PARTICIPANT),
                )
            raise self._reject(
                "complete",
                ConflictError(f"Request is {request.status}, not accepted", reason=ALREADY_HANDLED),
            )

        record_transition("complete", "success")
        logger.info("request_completed", request_id=request_id)

        await self.transport.send_many(
            [completed.requester_id, completed.acceptor_id],
            events.REQUEST_COMPLETED,
            {"requestId": completed.id, "status": RequestStatus.COMPLETED.value},
        )
        return completed

    # ---------------------- Disconnect cascade ----------------------

    async def cascade_disconnect(self, connection_id: str, request_ids: Iterable[int]) -> list[int]:
        """
        Finish cancelling the requests a departed connection left behind and
        tell every counterpart that is still connected.

        The registry already cancelled these rows while deleting the identity;
        anything still non-terminal here is force-cancelled through the CAS guard.
        """
        notified = []
        for request_id in request_ids:
            request = await self.store.get_request(request_id)
            if request is None:
                continue
            if not request.state.is_terminal:
                request = await self.store.force_cancel(request_id, "disconnect")
                if request is None:
                    continue
            elif request.status != RequestStatus.CANCELLED.value or request.cancel_reason != "disconnect":
                continue

            recipients = [
                cid for cid in request.counterparts(connection_id)
                if self.transport.is_connected(cid)
            ]
            await self.transport.send_many(
                recipients,
                events.REQUEST_CANCELLED,
                {"requestId": request.id, "reason": "disconnect"},
            )
            record_transition("disconnect", "success")
            logger.info("request_cancelled", request_id=request.id, reason="disconnect", notified=recipients)
            notified.append(request.id)
        return notified

    # ---------------------- Expiry ----------------------

    async def expire_stale(self, cutoff: datetime) -> list[int]:
        """Cancel pending requests created before ``cutoff``."""
        expired = []
        for request_id in await self.store.pending_before(cutoff):
            request = await self.store.force_cancel(
                request_id, "expired", only_status=(RequestStatus.PENDING.value,)
            )
            if request is None:
                # Accepted or cancelled since the scan
                continue
            record_transition("expire", "success")
            await self.transport.send_many(
                [request.requester_id, request.target_id],
                events.REQUEST_CANCELLED,
                {"requestId": request.id, "reason": "expired"},
            )
            expired.append(request.id)
        if expired:
            logger.info("requests_expired", request_ids=expired)
        return expired

    # ---------------------- Internals ----------------------

    @staticmethod
    def _reject(transition_name: str, error: CoordinationError) -> CoordinationError:
        record_transition(transition_name, error.code)
        logger.info(
            "transition_refused",
            transition=transition_name,
            code=error.code,
            reason=error.reason,
            message=error.message,
        )
        return error
