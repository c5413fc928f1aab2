"""MQTT side of the bridge.

- client.py: MQTTClient with connection lifecycle
- command_routing.py: ``<prefix>/<topic>/set`` handling
- state_updates.py: ``<prefix>/<topic>/get`` and availability publishing
- discovery.py: Home Assistant climate discovery config
"""

from .client import MQTTClient, parse_broker_url
from .command_routing import COMMAND_TOPICS, CommandRouter
from .discovery import DiscoveryHelper
from .state_updates import STATE_TOPICS, StateUpdateHelper

__all__ = [
    "COMMAND_TOPICS",
    "STATE_TOPICS",
    "CommandRouter",
    "DiscoveryHelper",
    "MQTTClient",
    "StateUpdateHelper",
    "parse_broker_url",
]
