"""Network transports to the AC unit: UDP discovery and the TCP status link."""

from hvac_bridge.transport.discovery import DiscoveryProtocol, DiscoverySession
from hvac_bridge.transport.status_channel import StatusChannel

__all__ = [
    "DiscoveryProtocol",
    "DiscoverySession",
    "StatusChannel",
]
