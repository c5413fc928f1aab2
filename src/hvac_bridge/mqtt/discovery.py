"""Home Assistant MQTT climate discovery for the AC unit."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from hvac_bridge.const import HVAC_MANUFACTURER, HVAC_MODEL, HVAC_VERSION
from hvac_bridge.logging_abstraction import get_logger

if TYPE_CHECKING:
    from hvac_bridge.mqtt.client import MQTTClient

logger = get_logger(__name__)

CLIMATE_MODES = ["off", "auto", "cool", "dry", "wind", "heat"]


def unique_id_for(host: str) -> str:
    """``CHac`` followed by the digits of the unit's configured address."""
    return "CHac" + re.sub(r"\D", "", host)


class DiscoveryHelper:
    """Builds and publishes the climate entity config to ``<prefix>/config``."""

    def __init__(self, mqtt_client: MQTTClient) -> None:
        self.client = mqtt_client

    def climate_config(self) -> dict[str, object]:
        prefix = self.client.topic
        settings = self.client.bridge.settings
        registry = self.client.bridge.session.registry
        config: dict[str, object] = {
            "name": settings.device_name,
            "uniq_id": unique_id_for(settings.host),
            "mode_cmd_t": f"{prefix}/mode/set",
            "mode_stat_t": f"{prefix}/mode/get",
            "curr_temp_t": f"{prefix}/temperature_in/get",
            "temp_cmd_t": f"{prefix}/temperature/set",
            "temp_stat_t": f"{prefix}/temperature/get",
            "avty_t": f"{prefix}/availability",
            "modes": CLIMATE_MODES,
            "temp_step": 1,
            "device": {
                "name": HVAC_MODEL,
                "manufacturer": HVAC_MANUFACTURER,
                "model": HVAC_MODEL,
                "sw_version": HVAC_VERSION,
                "identifiers": [unique_id_for(settings.host)],
            },
        }
        temperature = registry.get("temperature")
        if temperature is not None and temperature.values is None:
            config["min_temp"] = temperature.min_value
            config["max_temp"] = temperature.max_value
        fan_speed = registry.get("fan_speed")
        if fan_speed is not None and fan_speed.values is not None:
            config["fan_mode_cmd_t"] = f"{prefix}/fanspeed/set"
            config["fan_mode_stat_t"] = f"{prefix}/fanspeed/get"
            config["fan_modes"] = list(fan_speed.values)
        swing = registry.get("swing_vertical")
        if swing is not None and swing.values is not None:
            config["swing_mode_cmd_t"] = f"{prefix}/swingvert/set"
            config["swing_mode_stat_t"] = f"{prefix}/swingvert/get"
            config["swing_modes"] = list(swing.values)
        return config

    async def homeassistant_discovery(self) -> bool:
        lp = f"{self.client.lp}hass:"
        config = self.climate_config()
        logger.info("%s Publishing climate discovery config for '%s'", lp, config["name"])
        return await self.client.publish_json_msg(f"{self.client.topic}/config", config, retain=True)
