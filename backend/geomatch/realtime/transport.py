"""
Push channel abstraction consumed by the registry, presence and booking
services. One connection is one addressable endpoint.

Fan-out treats each delivery independently: every target is sent to in its
own task, so a slow or broken socket costs that target a timeout and
nothing more.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from geomatch.core.logging import get_logger
from geomatch.core.metrics import record_delivery

logger = get_logger(__name__)


def envelope(event: str, data: Any) -> dict:
    return {"event": event, "data": data}


class Transport(ABC):
    """
    Interface for outbound delivery.

    Implementations:
    - WebSocketHub: FastAPI websockets keyed by generated connection ids
    - InMemoryTransport: records deliveries, for tests and local tooling
    """

    @abstractmethod
    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        """
        Deliver one event to one connection.

        Returns:
            True if delivered, False if the connection is gone or failed
        """

    @abstractmethod
    def is_connected(self, connection_id: str) -> bool:
        pass

    @abstractmethod
    def connection_ids(self) -> list[str]:
        pass

    async def send_many(self, connection_ids: Iterable[str], event: str, data: Any) -> int:
        """Point-to-point delivery of the same event to many targets. Returns delivered count."""
        targets = list(dict.fromkeys(connection_ids))
        if not targets:
            return 0
        results = await asyncio.gather(
            *(self._deliver(cid, event, data) for cid in targets),
            return_exceptions=True,
        )
        return sum(1 for r in results if r is True)

    async def broadcast(self, event: str, data: Any, exclude: Optional[Iterable[str]] = None) -> int:
        """Deliver to every connected endpoint except ``exclude``."""
        skip = set(exclude or ())
        return await self.send_many(
            (cid for cid in self.connection_ids() if cid not in skip), event, data
        )

    async def _deliver(self, connection_id: str, event: str, data: Any) -> bool:
        try:
            return await self.send(connection_id, event, data)
        except Exception as e:
            record_delivery("failed")
            logger.warning("delivery_failed", target=connection_id, push_event=event, error=str(e))
            return False


class InMemoryTransport(Transport):
    """
    Single-process transport that records every delivery.

    Connections must be opened with connect(); sends to unknown ids are
    dropped like sends to a closed socket. Ids listed in ``failing`` raise on
    send, which exercises the fan-out isolation path.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, Any]] = []
        self.failing: set[str] = set()
        self._connected: list[str] = []

    def connect(self, connection_id: str) -> None:
        if connection_id not in self._connected:
            self._connected.append(connection_id)

    def disconnect(self, connection_id: str) -> None:
        if connection_id in self._connected:
            self._connected.remove(connection_id)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connected

    def connection_ids(self) -> list[str]:
        return list(self._connected)

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        if connection_id not in self._connected:
            return False
        if connection_id in self.failing:
            raise RuntimeError(f"socket for {connection_id} is broken")
        self.sent.append((connection_id, event, data))
        record_delivery("delivered")
        return True

    # ---------------------- Inspection helpers ----------------------

    def events_for(self, connection_id: str, event: Optional[str] = None) -> list[Any]:
        return [
            data for cid, name, data in self.sent
            if cid == connection_id and (event is None or name == event)
        ]

    def recipients_of(self, event: str) -> list[str]:
        return [cid for cid, name, _ in self.sent if name == event]

    def clear(self) -> None:
        self.sent.clear()
