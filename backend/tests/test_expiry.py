"""
Tests for expiry of pending requests nobody answered.
"""

import asyncio
from datetime import timedelta

import pytest

from geomatch.infrastructure.store import utcnow
from geomatch.models.enums import Role
from geomatch.realtime import events
from geomatch.services.expiry_service import RequestExpiryMonitor


@pytest.mark.asyncio
async def test_expire_stale_cancels_old_pending(join, coordinator, store, transport):
    await join("s1", Role.SEEKER, "Alice")
    await join("p1", Role.PROVIDER, "Bob")
    request = await coordinator.create_request("s1", "p1")
    transport.clear()

    expired = await coordinator.expire_stale(utcnow() + timedelta(seconds=1))

    assert expired == [request.id]
    stored = await store.get_request(request.id)
    assert stored.status == "cancelled"
    assert stored.cancel_reason == "expired"
    payload = {"requestId": request.id, "reason": "expired"}
    assert transport.events_for("s1", events.REQUEST_CANCELLED) == [payload]
    assert transport.events_for("p1", events.REQUEST_CANCELLED) == [payload]


@pytest.mark.asyncio
async def test_expiry_skips_recent_and_accepted(join, coordinator, store):
    await join("s1", Role.SEEKER, "Alice")
    await join("s2", Role.SEEKER, "Dan")
    await join("p1", Role.PROVIDER, "Bob")
    accepted = await coordinator.create_request("s1", "p1")
    await coordinator.accept_request(accepted.id, "p1")
    recent = await coordinator.create_request("s2", "p1")

    assert await coordinator.expire_stale(utcnow() - timedelta(minutes=5)) == []
    assert await coordinator.expire_stale(utcnow() + timedelta(seconds=1)) == [recent.id]
    assert (await store.get_request(accepted.id)).status == "accepted"


@pytest.mark.asyncio
async def test_monitor_run_once(join, coordinator, store):
    await join("s1", Role.SEEKER, "Alice")
    await join("p1", Role.PROVIDER, "Bob")
    request = await coordinator.create_request("s1", "p1")

    monitor = RequestExpiryMonitor(coordinator, expiry_seconds=0, interval_seconds=60)
    await asyncio.sleep(0.01)

    assert await monitor.run_once() == [request.id]
    assert (await store.get_request(request.id)).status == "cancelled"


@pytest.mark.asyncio
async def test_monitor_start_and_stop(coordinator):
    monitor = RequestExpiryMonitor(coordinator, expiry_seconds=300, interval_seconds=60)

    monitor.start()
    assert monitor._task is not None
    await monitor.stop()

    assert monitor._task is None
