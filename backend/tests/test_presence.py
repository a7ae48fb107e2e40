"""
Tests for role-scoped location sharing, snapshots and departure notices.
"""

import pytest

from geomatch.core.exceptions import NotFoundError
from geomatch.models.enums import Role
from geomatch.realtime import events
from geomatch.services.presence_service import PresenceBroadcaster


@pytest.mark.asyncio
async def test_location_reaches_only_located_opposite_role(join, presence, transport):
    await join("p1", Role.PROVIDER, "Bob", (40.0, -74.0))
    await join("p2", Role.PROVIDER, "No fix yet")
    await join("s2", Role.SEEKER, "Other seeker", (41.0, -73.0))
    seeker = await join("s1", Role.SEEKER, "Alice", (40.5, -74.5))
    transport.clear()

    delivered = await presence.share_location(seeker)

    assert delivered == 1
    assert transport.recipients_of(events.LOCATION_SHARED) == ["p1"]
    payload = transport.events_for("p1", events.LOCATION_SHARED)[0]
    assert payload == {
        "id": "s1",
        "name": "Alice",
        "role": "seeker",
        "latitude": 40.5,
        "longitude": -74.5,
        "accuracy": None,
    }


@pytest.mark.asyncio
async def test_location_with_no_counterparts_sends_nothing(join, presence, transport):
    seeker = await join("s1", Role.SEEKER, "Alice", (1.0, 1.0))
    transport.clear()

    assert await presence.share_location(seeker) == 0
    assert transport.sent == []


@pytest.mark.asyncio
async def test_snapshot_lists_opposite_role(join, presence, transport):
    await join("p1", Role.PROVIDER, "Bob", (1.0, 2.0))
    await join("p2", Role.PROVIDER, "Carol", (3.0, 4.0))
    await join("s1", Role.SEEKER, "Alice")
    transport.clear()

    snapshot = await presence.send_snapshot("s1", Role.SEEKER)

    assert [entry["id"] for entry in snapshot] == ["p1", "p2"]
    assert all(entry["last_seen"] for entry in snapshot)
    assert transport.events_for("s1", events.LOCATIONS_DATA) == [snapshot]


@pytest.mark.asyncio
async def test_snapshot_defaults_to_callers_role(join, presence, transport):
    await join("s9", Role.SEEKER, "Seeker", (5.0, 5.0))
    await join("p1", Role.PROVIDER, "Bob")

    snapshot = await presence.send_snapshot("p1")

    assert [entry["id"] for entry in snapshot] == ["s9"]


@pytest.mark.asyncio
async def test_snapshot_without_identity_or_role_fails(presence, transport):
    transport.connect("anon")
    with pytest.raises(NotFoundError):
        await presence.send_snapshot("anon")


@pytest.mark.asyncio
async def test_snapshot_may_be_empty(presence, transport):
    transport.connect("anon")

    snapshot = await presence.send_snapshot("anon", Role.PROVIDER)

    assert snapshot == []
    assert transport.events_for("anon", events.LOCATIONS_DATA) == [[]]


@pytest.mark.asyncio
async def test_departure_is_broadcast_to_everyone_else(join, presence, transport):
    await join("s1", Role.SEEKER, "Alice")
    await join("s2", Role.SEEKER, "Dan")
    await join("p1", Role.PROVIDER, "Bob")
    transport.connect("anon")
    transport.clear()

    delivered = await presence.announce_departure("s1", "seeker")

    assert delivered == 3
    assert sorted(transport.recipients_of(events.USER_OFFLINE)) == ["anon", "p1", "s2"]
    assert transport.events_for("p1", events.USER_OFFLINE) == [{"id": "s1"}]


@pytest.mark.asyncio
async def test_departure_scoped_to_opposite_role(join, registry, transport):
    presence = PresenceBroadcaster(registry, transport, offline_scope="opposite_role")
    await join("s1", Role.SEEKER, "Alice")
    await join("s2", Role.SEEKER, "Dan")
    await join("p1", Role.PROVIDER, "Bob")
    transport.clear()

    await presence.announce_departure("s1", "seeker")

    assert transport.recipients_of(events.USER_OFFLINE) == ["p1"]
