"""WebSocket-backed transport: one FastAPI WebSocket per connection id."""

import asyncio
import uuid
from typing import Any

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from geomatch.core.logging import get_logger
from geomatch.core.metrics import realtime_connections, record_delivery
from geomatch.realtime.transport import Transport, envelope

logger = get_logger(__name__)


class WebSocketHub(Transport):
    def __init__(self, send_timeout: float = 5.0) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._send_timeout = send_timeout

    def register(self, websocket: WebSocket) -> str:
        """Bind an accepted socket to a fresh connection id."""
        connection_id = uuid.uuid4().hex[:20]
        self._sockets[connection_id] = websocket
        realtime_connections.inc()
        logger.info("connection_registered", connection_id=connection_id, total=len(self._sockets))
        return connection_id

    def unregister(self, connection_id: str) -> None:
        if self._sockets.pop(connection_id, None) is not None:
            realtime_connections.dec()
            logger.info("connection_unregistered", connection_id=connection_id, total=len(self._sockets))

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._sockets

    def connection_ids(self) -> list[str]:
        return list(self._sockets)

    def count(self) -> int:
        return len(self._sockets)

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        websocket = self._sockets.get(connection_id)
        if websocket is None or websocket.application_state != WebSocketState.CONNECTED:
            return False
        try:
            await asyncio.wait_for(websocket.send_json(envelope(event, data)), self._send_timeout)
        except asyncio.TimeoutError:
            record_delivery("timeout")
            logger.warning("delivery_timeout", target=connection_id, push_event=event)
            return False
        except (WebSocketDisconnect, RuntimeError) as e:
            record_delivery("failed")
            logger.debug("delivery_failed", target=connection_id, push_event=event, error=str(e))
            return False
        record_delivery("delivered")
        return True
