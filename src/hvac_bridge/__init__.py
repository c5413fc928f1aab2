"""Bridge between a split-system AC unit's binary LAN protocol and MQTT."""

__version__ = "0.3.0"
