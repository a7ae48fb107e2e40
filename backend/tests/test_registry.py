"""
Tests for identity registration, location updates and removal.
"""

import pytest

from geomatch.core.exceptions import ConflictError, NotFoundError
from geomatch.models.enums import Role


@pytest.mark.asyncio
async def test_register_creates_identity(registry):
    identity = await registry.register("c1", Role.SEEKER, "Alice")

    assert identity.connection_id == "c1"
    assert identity.role == "seeker"
    assert identity.name == "Alice"
    assert not identity.has_location


@pytest.mark.asyncio
async def test_reselecting_same_role_refreshes_name(registry):
    await registry.register("c1", Role.PROVIDER, "Bob")
    identity = await registry.register("c1", Role.PROVIDER, "Bobby")

    assert identity.name == "Bobby"
    assert len(await registry.get_all_by_role(Role.PROVIDER)) == 1


@pytest.mark.asyncio
async def test_role_is_immutable_for_a_connection(registry):
    await registry.register("c1", Role.SEEKER, "Alice")

    with pytest.raises(ConflictError) as exc_info:
        await registry.register("c1", Role.PROVIDER, "Alice")
    assert exc_info.value.reason == "role_locked"

    identity = await registry.get("c1")
    assert identity.role == "seeker"


@pytest.mark.asyncio
async def test_location_update_requires_identity(registry):
    with pytest.raises(NotFoundError):
        await registry.update_location("ghost", 10.0, 20.0)


@pytest.mark.asyncio
async def test_location_update_is_stored(registry):
    await registry.register("c1", Role.PROVIDER, "Bob")
    identity = await registry.update_location("c1", 40.71, -74.0, 12.5)

    assert identity.latitude == 40.71
    assert identity.longitude == -74.0
    assert identity.accuracy == 12.5
    assert identity.has_location


@pytest.mark.asyncio
async def test_get_by_role_returns_only_located(registry):
    await registry.register("p1", Role.PROVIDER, "Located")
    await registry.update_location("p1", 1.0, 1.0)
    await registry.register("p2", Role.PROVIDER, "Unlocated")
    await registry.register("s1", Role.SEEKER, "Seeker")
    await registry.update_location("s1", 2.0, 2.0)

    located = await registry.get_by_role(Role.PROVIDER)
    assert [i.connection_id for i in located] == ["p1"]


@pytest.mark.asyncio
async def test_remove_deletes_identity(registry):
    await registry.register("c1", Role.SEEKER, "Alice")

    result = await registry.remove("c1")

    assert result.identity.connection_id == "c1"
    assert result.request_ids == []
    assert await registry.get("c1") is None


@pytest.mark.asyncio
async def test_remove_unknown_connection_is_a_noop(registry):
    result = await registry.remove("never-registered")

    assert result.identity is None
    assert result.request_ids == []
