"""
Websocket endpoint. One socket is one connection identity.

Messages from a socket are handled strictly in order inside that socket's
own task; a slow store call for one connection never holds up another.
"""

import json
from typing import Optional

import anyio
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from geomatch.core.exceptions import ValidationError
from geomatch.core.logging import bind_connection, get_logger
from geomatch.realtime import events

logger = get_logger(__name__)
router = APIRouter(tags=["Realtime"])


async def _receive_message(websocket: WebSocket) -> Optional[str]:
    """Next text frame, or None for a frame that carries no text."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    return message.get("text")


@router.websocket("/ws")
async def coordination_socket(websocket: WebSocket):
    hub = websocket.app.state.hub
    dispatcher = websocket.app.state.dispatcher

    await websocket.accept()
    connection_id = hub.register(websocket)
    bind_connection(connection_id)
    logger.info("client_connected")

    try:
        await dispatcher.on_connect(connection_id)
        while True:
            raw = await _receive_message(websocket)
            bind_connection(connection_id)
            try:
                if raw is None:
                    raise ValueError("binary frame")
                message = json.loads(raw)
            except ValueError:
                await hub.send(
                    connection_id, events.ERROR, ValidationError("Message is not valid JSON").to_payload()
                )
                continue
            await dispatcher.dispatch(connection_id, message)
    except WebSocketDisconnect as e:
        logger.info("client_disconnected", close_code=e.code)
    except Exception:
        logger.exception("websocket_loop_crashed")
    finally:
        # The server may cancel this task once the socket closes
        with anyio.CancelScope(shield=True):
            hub.unregister(connection_id)
            await dispatcher.on_disconnect(connection_id)
