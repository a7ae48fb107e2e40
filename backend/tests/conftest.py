"""
Pytest fixtures for the store, services, dispatcher and HTTP client.

Each test gets its own SQLite database file, so concurrent sessions in a
test really contend on one database the way workers would in production.
"""

import os
import tempfile
from typing import AsyncGenerator

# Settings are cached on first import; configure them before importing the app
_RUNTIME_DIR = tempfile.mkdtemp(prefix="geomatch-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_RUNTIME_DIR}/app.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("REQUEST_EXPIRY_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from geomatch.api.deps import get_store
from geomatch.core.config import Settings
from geomatch.db.session import create_engine_from_settings, create_sessionmaker, init_models
from geomatch.infrastructure.store import CoordinationStore
from geomatch.main import app
from geomatch.models.enums import Role
from geomatch.realtime.dispatcher import EventDispatcher
from geomatch.realtime.hub import WebSocketHub
from geomatch.realtime.transport import InMemoryTransport
from geomatch.services.presence_service import PresenceBroadcaster
from geomatch.services.registry_service import ConnectionRegistry
from geomatch.services.request_service import RequestCoordinator


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh database file with all tables created."""
    settings = Settings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/test.db")
    test_engine = create_engine_from_settings(settings)
    await init_models(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def store(engine: AsyncEngine) -> CoordinationStore:
    return CoordinationStore(create_sessionmaker(engine))


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def registry(store: CoordinationStore) -> ConnectionRegistry:
    return ConnectionRegistry(store)


@pytest.fixture
def presence(registry: ConnectionRegistry, transport: InMemoryTransport) -> PresenceBroadcaster:
    return PresenceBroadcaster(registry, transport)


@pytest.fixture
def coordinator(
    store: CoordinationStore,
    registry: ConnectionRegistry,
    transport: InMemoryTransport,
) -> RequestCoordinator:
    return RequestCoordinator(store, registry, transport)


@pytest.fixture
def dispatcher(
    registry: ConnectionRegistry,
    presence: PresenceBroadcaster,
    transport: InMemoryTransport,
    coordinator: RequestCoordinator,
) -> EventDispatcher:
    return EventDispatcher(registry, presence, transport, coordinator)


@pytest.fixture
def join(registry: ConnectionRegistry, transport: InMemoryTransport):
    """
    Connect and register a participant, optionally with a location.

    Usage: seeker = await join("s1", Role.SEEKER, "Alice", (40.0, -74.0))
    """

    async def _join(connection_id: str, role: Role, name: str, location=None):
        transport.connect(connection_id)
        identity = await registry.register(connection_id, role, name)
        if location is not None:
            identity = await registry.update_location(connection_id, *location)
        return identity

    return _join


@pytest_asyncio.fixture(scope="function")
async def client(store: CoordinationStore, dispatcher: EventDispatcher) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test store. ASGITransport does not run the lifespan."""
    app.state.store = store
    app.state.hub = WebSocketHub()
    app.state.dispatcher = dispatcher
    app.dependency_overrides[get_store] = lambda: store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
