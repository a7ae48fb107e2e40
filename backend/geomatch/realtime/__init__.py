"""
Realtime layer: push transports and wire event names.
The inbound dispatcher lives in geomatch.realtime.dispatcher.
"""

from .transport import InMemoryTransport, Transport, envelope
from .hub import WebSocketHub

__all__ = ["Transport", "InMemoryTransport", "WebSocketHub", "envelope"]
