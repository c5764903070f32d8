from typing import Optional

from inkstream.config import settings
from inkstream.transport.base import Transport, TransportHandle, TransportHandlers
from inkstream.transport.curl import CurlTransport
from inkstream.transport.http import HttpxTransport


def create_transport(name: Optional[str] = None) -> Transport:
    """Create the transport selected by name, or by the "transport" setting."""
    name = name or settings.transport
    if name == "curl":
        return CurlTransport()
    if name == "httpx":
        return HttpxTransport()
    raise ValueError(f"Unknown transport '{name}'")


__all__ = [
    "CurlTransport",
    "HttpxTransport",
    "Transport",
    "TransportHandle",
    "TransportHandlers",
    "create_transport",
]
