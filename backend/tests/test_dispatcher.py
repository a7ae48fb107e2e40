"""
Tests for inbound event routing and error reporting.
"""

import pytest

from geomatch.realtime import events
from geomatch.realtime.dispatcher import EventDispatcher


async def _connect(dispatcher, transport, connection_id: str) -> None:
    transport.connect(connection_id)
    await dispatcher.on_connect(connection_id)


@pytest.mark.asyncio
async def test_connect_sends_connection_id(dispatcher, transport):
    await _connect(dispatcher, transport, "c1")

    assert transport.events_for("c1", events.CONNECTION_ESTABLISHED) == [{"id": "c1"}]


@pytest.mark.asyncio
async def test_seeker_provider_booking_scenario(dispatcher, store, transport):
    """
    Alice (seeker) books Bob (provider); a second provider arriving late
    gets an error and the request stays bound to Bob.
    """
    for cid in ("S", "P1", "P2"):
        await _connect(dispatcher, transport, cid)

    await dispatcher.dispatch("S", {"event": "select-role", "data": {"role": "seeker", "name": "Alice"}})
    await dispatcher.dispatch("P1", {"event": "select-role", "data": {"role": "provider", "name": "Bob"}})
    await dispatcher.dispatch("P2", {"event": "select-role", "data": {"role": "provider", "name": "Carol"}})
    assert transport.events_for("S", events.ROLE_SELECTED) == [{"role": "seeker", "name": "Alice"}]

    await dispatcher.dispatch("P1", {"event": "location-update", "data": {"latitude": 51.5, "longitude": -0.12}})
    await dispatcher.dispatch("S", {"event": "location-update", "data": {"latitude": 51.51, "longitude": -0.13}})
    assert [p["id"] for p in transport.events_for("S", events.LOCATION_SHARED)] == []
    assert [p["id"] for p in transport.events_for("P1", events.LOCATION_SHARED)] == ["S"]

    await dispatcher.dispatch("S", {"event": "create-request", "data": {"targetId": "P1"}})
    new_request = transport.events_for("P1", events.NEW_REQUEST)
    assert len(new_request) == 1
    assert new_request[0]["requesterName"] == "Alice"
    assert new_request[0]["requesterLat"] == 51.51
    assert new_request[0]["requesterLng"] == -0.13
    created = transport.events_for("S", events.REQUEST_CREATED)
    assert created[0]["status"] == "pending"
    request_id = created[0]["requestId"]

    await dispatcher.dispatch("P1", {"event": "accept-request", "data": {"requestId": request_id}})
    assert transport.events_for("S", events.REQUEST_ACCEPTED)[0]["status"] == "accepted"
    assert transport.events_for("P1", events.REQUEST_ACCEPTED)[0]["acceptorName"] == "Bob"

    await dispatcher.dispatch("P2", {"event": "accept-request", "data": {"requestId": request_id}})
    errors = transport.events_for("P2", events.ERROR)
    assert len(errors) == 1
    assert errors[0]["code"] == "conflict"
    assert errors[0]["reason"] == "already_handled"
    assert transport.events_for("P2", events.REQUEST_ACCEPTED) == []

    stored = await store.get_request(request_id)
    assert stored.status == "accepted"
    assert stored.acceptor_id == "P1"


@pytest.mark.asyncio
async def test_unknown_event_reports_error(dispatcher, transport):
    await _connect(dispatcher, transport, "c1")

    await dispatcher.dispatch("c1", {"event": "teleport", "data": {}})

    error = transport.events_for("c1", events.ERROR)[0]
    assert error["code"] == "validation_error"
    assert "teleport" in error["message"]


@pytest.mark.asyncio
async def test_message_without_event_reports_error(dispatcher, transport):
    await _connect(dispatcher, transport, "c1")

    await dispatcher.dispatch("c1", ["not", "an", "object"])

    assert transport.events_for("c1", events.ERROR)[0]["code"] == "validation_error"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "event, data",
    [
        ("select-role", {"role": "driver", "name": "Alice"}),
        ("select-role", {"role": "seeker", "name": "   "}),
        ("select-role", {"role": "seeker", "name": "x" * 101}),
        ("location-update", {"latitude": 91, "longitude": 0}),
        ("location-update", {"latitude": 0, "longitude": -181}),
        ("location-update", {"latitude": "north", "longitude": 0}),
        ("accept-request", {"requestId": "abc"}),
        ("create-request", {}),
    ],
)
async def test_invalid_payload_is_a_validation_error(dispatcher, store, transport, event, data):
    await _connect(dispatcher, transport, "c1")

    await dispatcher.dispatch("c1", {"event": event, "data": data})

    errors = transport.events_for("c1", events.ERROR)
    assert len(errors) == 1
    assert errors[0]["code"] == "validation_error"
    assert await store.get_identity("c1") is None


@pytest.mark.asyncio
async def test_errors_go_only_to_the_caller(dispatcher, transport):
    await _connect(dispatcher, transport, "c1")
    await _connect(dispatcher, transport, "c2")

    await dispatcher.dispatch("c1", {"event": "location-update", "data": {"latitude": 1, "longitude": 1}})

    assert transport.events_for("c1", events.ERROR)[0]["code"] == "not_found"
    assert transport.events_for("c2", events.ERROR) == []


@pytest.mark.asyncio
async def test_role_change_is_reported(dispatcher, transport):
    await _connect(dispatcher, transport, "c1")
    await dispatcher.dispatch("c1", {"event": "select-role", "data": {"role": "seeker", "name": "Alice"}})

    await dispatcher.dispatch("c1", {"event": "select-role", "data": {"role": "provider", "name": "Alice"}})

    error = transport.events_for("c1", events.ERROR)[0]
    assert error["code"] == "conflict"
    assert error["reason"] == "role_locked"


@pytest.mark.asyncio
async def test_get_locations_accepts_bare_role_string(dispatcher, transport):
    await _connect(dispatcher, transport, "p1")
    await dispatcher.dispatch("p1", {"event": "select-role", "data": {"role": "provider", "name": "Bob"}})
    await dispatcher.dispatch("p1", {"event": "location-update", "data": {"latitude": 3, "longitude": 4}})
    await _connect(dispatcher, transport, "s1")

    await dispatcher.dispatch("s1", {"event": "get-locations", "data": "seeker"})

    snapshot = transport.events_for("s1", events.LOCATIONS_DATA)[0]
    assert [entry["id"] for entry in snapshot] == ["p1"]


@pytest.mark.asyncio
async def test_create_request_accepts_worker_id_alias(dispatcher, store, transport):
    for cid, role, name in (("s1", "seeker", "Alice"), ("p1", "provider", "Bob")):
        await _connect(dispatcher, transport, cid)
        await dispatcher.dispatch(cid, {"event": "select-role", "data": {"role": role, "name": name}})

    await dispatcher.dispatch("s1", {"event": "create-request", "data": {"workerId": "p1"}})

    assert len(transport.events_for("p1", events.NEW_REQUEST)) == 1
    assert await store.has_active_request("s1")


@pytest.mark.asyncio
async def test_handler_crash_becomes_generic_error(dispatcher, transport, monkeypatch):
    await _connect(dispatcher, transport, "c1")

    async def boom(*args, **kwargs):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(dispatcher.registry, "register", boom)

    await dispatcher.dispatch("c1", {"event": "select-role", "data": {"role": "seeker", "name": "Alice"}})

    error = transport.events_for("c1", events.ERROR)[0]
    assert error["code"] == "persistence_error"
    assert "database exploded" not in error["message"]


@pytest.mark.asyncio
async def test_booking_events_unknown_without_coordinator(registry, presence, transport):
    dispatcher = EventDispatcher(registry, presence, transport)
    await _connect(dispatcher, transport, "c1")

    await dispatcher.dispatch("c1", {"event": "create-request", "data": {"targetId": "p1"}})

    assert not dispatcher.booking_enabled
    error = transport.events_for("c1", events.ERROR)[0]
    assert error["message"] == "Unknown event: create-request"
