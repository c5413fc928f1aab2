"""MQTT command routing: ``<prefix>/<topic>/set`` to bridge set-requests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from hvac_bridge.logging_abstraction import get_logger
from hvac_bridge.protocol.exceptions import CommandError, TransportError
from hvac_bridge.protocol.frame_codec import encode_value

if TYPE_CHECKING:
    from hvac_bridge.bridge import HvacBridge
    from hvac_bridge.mqtt.client import MQTTClient

logger = get_logger(__name__)

# topic segment -> property name
COMMAND_TOPICS: dict[str, str] = {
    "temperature": "temperature",
    "mode": "mode",
    "fanspeed": "fan_speed",
    "swinghor": "swing_horizontal",
    "swingvert": "swing_vertical",
    "power": "power",
    "health": "health",
    "powersave": "energy_save",
    "lights": "lights",
    "quiet": "quiet",
    "blow": "blow",
    "air": "air",
    "sleep": "sleep",
    "turbo": "turbo",
}

POWER_OFF_MODES = ("off", "none")
# how long a mode change waits for the unit to report it powered on
POWER_ON_SETTLE_TIMEOUT = 5.0


class CommandRouter:
    """Helper class for routing MQTT messages to bridge set-requests."""

    def __init__(self, mqtt_client: MQTTClient) -> None:
        self.client = mqtt_client

    @property
    def bridge(self) -> HvacBridge:
        return self.client.bridge

    def parse_topic(self, topic: str) -> str | None:
        """Return the property a ``<prefix>/<name>/set`` topic controls."""
        prefix = f"{self.client.topic}/"
        if not topic.startswith(prefix) or not topic.endswith("/set"):
            return None
        name = topic[len(prefix) : -len("/set")]
        return COMMAND_TOPICS.get(name)

    async def handle_message(self, topic: str, payload: bytes | bytearray | str) -> bool:
        """Apply one set message. Invalid requests are logged and dropped."""
        lp = f"{self.client.lp}rcv:"
        property_name = self.parse_topic(topic)
        if property_name is None:
            logger.debug("%s No handler for topic %s", lp, topic)
            return False
        value = payload.decode(errors="replace") if isinstance(payload, (bytes, bytearray)) else str(payload)
        value = value.strip()
        logger.info("%s Message '%s' received for %s", lp, value, topic)

        try:
            if property_name == "mode":
                await self.set_mode(value)
            else:
                await self.bridge.set_property(property_name, value)
        except CommandError as e:
            logger.warning("%s Dropping '%s' for %s: %s", lp, value, topic, e)
            return False
        except TransportError as e:
            logger.warning("%s Could not reach the unit for %s: %s", lp, topic, e.reason)
            return False
        return True

    async def set_mode(self, value: str) -> None:
        """Power off for ``off``/``none``; otherwise power on if needed, then set mode.

        The mode patch must be built on a snapshot that already shows the unit
        powered on, so after switching power on this waits for the next status
        frame.
        """
        lp = f"{self.client.lp}set_mode:"
        if value.casefold() in POWER_OFF_MODES:
            await self.bridge.set_property("power", "off")
            return

        # reject unknown labels before touching power
        descriptor = self.bridge.session.registry.get("mode")
        if descriptor is not None:
            encode_value(descriptor, value)

        if self.bridge.session.properties.get("power") == "off":
            # the reply to the power-on refresh can beat the wait below
            waiter = self.bridge.expect_status()
            try:
                await self.bridge.set_property("power", "on")
            except BaseException:
                self.bridge.discard_status_waiter(waiter)
                raise
            if not await self.bridge.wait_for_status(POWER_ON_SETTLE_TIMEOUT, waiter):
                logger.warning("%s No status after power on, setting mode on the last snapshot", lp)
        await self.bridge.set_property("mode", value)

    async def start_receiver_task(self) -> None:
        """Start listening for MQTT messages on subscribed topics"""
        assert self.client.client is not None, "client must be initialized"
        async for message in self.client.client.messages:
            msg: Any = cast("Any", message)
            payload = msg.payload
            if not payload:
                logger.debug("%s Empty payload for topic: %s, skipping...", self.client.lp, msg.topic)
                continue
            await self.handle_message(msg.topic.value, payload)
