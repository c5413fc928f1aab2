"""Publishing decoded unit state to ``<prefix>/<topic>/get``."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hvac_bridge.const import HVAC_BIRTH_MSG, HVAC_WILL_MSG
from hvac_bridge.events import SessionStateChanged, StatusChanged
from hvac_bridge.logging_abstraction import get_logger
from hvac_bridge.structs import SessionState

if TYPE_CHECKING:
    from hvac_bridge.mqtt.client import MQTTClient

logger = get_logger(__name__)

# property name -> topic segment
STATE_TOPICS: dict[str, str] = {
    "temperature": "temperature",
    "indoor_temperature": "temperature_in",
    "effective_mode": "mode",
    "fan_speed": "fanspeed",
    "swing_horizontal": "swinghor",
    "swing_vertical": "swingvert",
    "power": "power",
    "health": "health",
    "energy_save": "powersave",
    "lights": "lights",
    "quiet": "quiet",
    "blow": "blow",
    "air": "air",
    "sleep": "sleep",
    "turbo": "turbo",
}


class StateUpdateHelper:
    """Turns bridge events into MQTT state and availability messages."""

    def __init__(self, mqtt_client: MQTTClient) -> None:
        self.client = mqtt_client

    async def on_status_changed(self, event: StatusChanged) -> None:
        topic = STATE_TOPICS.get(event.name)
        if topic is None:
            return
        await self.client.publish(f"{self.client.topic}/{topic}/get", str(event.value).encode())

    async def on_session_state_changed(self, event: SessionStateChanged) -> None:
        if event.new == SessionState.POLLING:
            await self.pub_online(True)
        elif event.old == SessionState.POLLING:
            await self.pub_online(False)

    async def pub_online(self, status: bool) -> bool:
        lp = f"{self.client.lp}pub_online:"
        payload = HVAC_BIRTH_MSG if status else HVAC_WILL_MSG
        logger.debug("%s availability -> %s", lp, payload.decode())
        return await self.client.publish(f"{self.client.topic}/availability", payload, retain=True)

    def republish_all(self) -> int:
        """Forget what was published so every current value goes out again."""
        bridge = self.client.bridge
        bridge.sync.reset()
        if not bridge.session.properties:
            return 0
        return len(bridge.sync.sync(bridge.session.properties))
