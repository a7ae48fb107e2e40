"""
Inbound event dispatcher.

Routes each inbound event to exactly one component (registry, presence or
booking coordinator) and turns every failure into an ``error`` event for
the triggering connection only. Booking is an optional capability: built
without a coordinator, the dispatcher serves the presence core alone and
answers booking events as unknown.
"""

import time
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from geomatch.core.exceptions import CoordinationError, PersistenceError, ValidationError
from geomatch.core.logging import get_logger
from geomatch.core.metrics import event_latency, record_inbound_event
from geomatch.realtime import events
from geomatch.realtime.transport import Transport
from geomatch.schemas.booking import CreateRequestPayload, RequestActionPayload
from geomatch.schemas.presence import GetLocationsPayload, LocationUpdatePayload, SelectRolePayload
from geomatch.services.presence_service import PresenceBroadcaster
from geomatch.services.registry_service import ConnectionRegistry
from geomatch.services.request_service import RequestCoordinator

logger = get_logger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


def _describe(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"Invalid {location}: {first.get('msg', 'invalid value')}"


class EventDispatcher:
    def __init__(
        self,
        registry: ConnectionRegistry,
        presence: PresenceBroadcaster,
        transport: Transport,
        coordinator: Optional[RequestCoordinator] = None,
    ):
        self.registry = registry
        self.presence = presence
        self.transport = transport
        self.coordinator = coordinator

        self._handlers: dict[str, Handler] = {
            events.SELECT_ROLE: self._select_role,
            events.LOCATION_UPDATE: self._location_update,
            events.GET_LOCATIONS: self._get_locations,
        }
        if coordinator is not None:
            self._handlers.update({
                events.CREATE_REQUEST: self._create_request,
                events.ACCEPT_REQUEST: self._accept_request,
                events.CANCEL_REQUEST: self._cancel_request,
                events.COMPLETE_REQUEST: self._complete_request,
            })

    @property
    def booking_enabled(self) -> bool:
        return self.coordinator is not None

    # ---------------------- Lifecycle ----------------------

    async def on_connect(self, connection_id: str) -> None:
        await self.transport.send(connection_id, events.CONNECTION_ESTABLISHED, {"id": connection_id})

    async def on_disconnect(self, connection_id: str) -> None:
        """Remove the identity, cancel what it leaves behind, announce departure."""
        role = None
        try:
            removal = await self.registry.remove(connection_id)
            role = removal.identity.role if removal.identity else None
            if self.coordinator is not None and removal.request_ids:
                await self.coordinator.cascade_disconnect(connection_id, removal.request_ids)
        except CoordinationError as e:
            logger.error("disconnect_cleanup_failed", code=e.code, error=e.message)
        await self.presence.throttle.forget(connection_id)
        try:
            await self.presence.announce_departure(connection_id, role)
        except CoordinationError as e:
            logger.error("departure_announce_failed", code=e.code, error=e.message)

    # ---------------------- Dispatch ----------------------

    async def dispatch(self, connection_id: str, message: Any) -> None:
        if not isinstance(message, dict) or not isinstance(message.get("event"), str):
            await self._send_error(connection_id, ValidationError("Message event is required"))
            return

        event = message["event"]
        handler = self._handlers.get(event)
        if handler is None:
            record_inbound_event("unknown", "validation_error")
            await self._send_error(connection_id, ValidationError(f"Unknown event: {event}"))
            return

        outcome = "ok"
        start = time.perf_counter()
        try:
            await handler(connection_id, message.get("data"))
        except PydanticValidationError as e:
            outcome = "validation_error"
            await self._send_error(connection_id, ValidationError(_describe(e)))
        except CoordinationError as e:
            outcome = e.code
            await self._send_error(connection_id, e)
        except Exception:
            outcome = "internal_error"
            logger.exception("event_handler_crashed", inbound_event=event)
            await self._send_error(connection_id, PersistenceError(f"Error processing {event}"))
        finally:
            record_inbound_event(event, outcome)
            event_latency.labels(event=event).observe(time.perf_counter() - start)

    async def _send_error(self, connection_id: str, error: CoordinationError) -> None:
        await self.transport.send(connection_id, events.ERROR, error.to_payload())

    # ---------------------- Presence handlers ----------------------

    async def _select_role(self, connection_id: str, data: Any) -> None:
        payload = SelectRolePayload.model_validate(data or {})
        identity = await self.registry.register(connection_id, payload.role, payload.name)
        await self.transport.send(connection_id, events.ROLE_SELECTED, {
            "role": identity.role,
            "name": identity.name,
        })

    async def _location_update(self, connection_id: str, data: Any) -> None:
        payload = LocationUpdatePayload.model_validate(data or {})
        identity = await self.registry.update_location(
            connection_id, payload.latitude, payload.longitude, payload.accuracy
        )
        await self.presence.share_location(identity)

    async def _get_locations(self, connection_id: str, data: Any) -> None:
        # Older clients send the bare role string instead of {"role": ...}
        if isinstance(data, str):
            data = {"role": data}
        payload = GetLocationsPayload.model_validate(data or {})
        await self.presence.send_snapshot(connection_id, payload.role)

    # ---------------------- Booking handlers ----------------------

    async def _create_request(self, connection_id: str, data: Any) -> None:
        payload = CreateRequestPayload.model_validate(data or {})
        await self.coordinator.create_request(connection_id, payload.target_id)

    async def _accept_request(self, connection_id: str, data: Any) -> None:
        payload = RequestActionPayload.model_validate(data or {})
        await self.coordinator.accept_request(payload.request_id, connection_id)

    async def _cancel_request(self, connection_id: str, data: Any) -> None:
        payload = RequestActionPayload.model_validate(data or {})
        await self.coordinator.cancel_request(payload.request_id, connection_id)

    async def _complete_request(self, connection_id: str, data: Any) -> None:
        payload = RequestActionPayload.model_validate(data or {})
        await self.coordinator.complete_request(payload.request_id, connection_id)
