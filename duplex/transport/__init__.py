"""Client transports carrying one user turn to the conversation backend."""

from duplex.transport.base import BaseTransport
from duplex.transport.factory import create_transport
from duplex.transport.http import RequestResponseTransport
from duplex.transport.protocol import TransportClient, TransportEvent
from duplex.transport.stream import StreamingTransport

__all__ = [
    # Protocol
    "TransportClient",
    "TransportEvent",
    # Implementations
    "BaseTransport",
    "RequestResponseTransport",
    "StreamingTransport",
    # Factory
    "create_transport",
]
