"""Transport selection from settings."""

from __future__ import annotations

from typing import Any

from duplex.config import Settings, get_settings
from duplex.logging_config import get_logger
from duplex.transport.http import RequestResponseTransport
from duplex.transport.protocol import TransportClient
from duplex.transport.stream import StreamingTransport

logger: Any = get_logger(__name__)


def create_transport(settings: Settings | None = None) -> TransportClient:
    """Build the transport named by `settings.transport_mode`."""
    s = settings or get_settings()
    if s.transport_mode == "stream":
        logger.info(f"Using streaming transport: {s.stream_url}")
        return StreamingTransport(s)

    logger.info(f"Using request/response transport: {s.backend_url}")
    return RequestResponseTransport(s)
