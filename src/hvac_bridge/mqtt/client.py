"""MQTT client core for the HVAC bridge.

Provides the MQTTClient class with connection lifecycle, and delegates
discovery, state publishing and command routing to helper modules.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import aiomqtt

from hvac_bridge.const import HVAC_BIRTH_MSG, HVAC_WILL_MSG
from hvac_bridge.events import SessionStateChanged, StatusChanged
from hvac_bridge.logging_abstraction import get_logger
from hvac_bridge.mqtt.command_routing import CommandRouter
from hvac_bridge.mqtt.discovery import DiscoveryHelper
from hvac_bridge.mqtt.state_updates import StateUpdateHelper

if TYPE_CHECKING:
    from hvac_bridge.bridge import HvacBridge

logger = get_logger(__name__)

DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTTS_PORT = 8883


def parse_broker_url(url: str) -> tuple[str, int, bool]:
    """Split ``mqtt://host:port`` / ``mqtts://host`` into (host, port, tls)."""
    parts = urlsplit(url if "://" in url else f"mqtt://{url}")
    tls = parts.scheme in ("mqtts", "ssl", "tls")
    port = parts.port or (DEFAULT_MQTTS_PORT if tls else DEFAULT_MQTT_PORT)
    return parts.hostname or "localhost", port, tls


class MQTTClient:
    """Connects the bridge to an MQTT broker."""

    lp: str = "mqtt:"

    def __init__(self, bridge: HvacBridge) -> None:
        self.bridge = bridge
        settings = bridge.settings
        self.topic: str = settings.mqtt_topic_prefix.rstrip("/")
        self.broker_host, self.broker_port, self.broker_tls = parse_broker_url(settings.mqtt_broker_url)
        self.broker_username: str | None = settings.mqtt_username
        self.broker_password: str | None = settings.mqtt_password
        self.broker_client_id: str = f"hvac_bridge_{uuid.uuid4().hex[:8]}"
        self.client: aiomqtt.Client | None = None
        self.start_task: asyncio.Task[None] | None = None
        self._connected: bool = False

        self.discovery = DiscoveryHelper(self)
        self.state_updates = StateUpdateHelper(self)
        self.command_router = CommandRouter(self)
        bridge.events.subscribe(StatusChanged, self.state_updates.on_status_changed)
        bridge.events.subscribe(SessionStateChanged, self.state_updates.on_session_state_changed)

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_connection_delay(self, lp: str) -> int:
        """Get connection retry delay, defaulting to 5 seconds."""
        delay = self.bridge.settings.mqtt_conn_delay
        if delay <= 0:
            logger.debug("%s MQTT connection delay is <= 0, which is probably a typo, using 5...", lp)
            return 5
        return delay

    def _new_client(self) -> aiomqtt.Client:
        lwt = aiomqtt.Will(topic=f"{self.topic}/availability", payload=HVAC_WILL_MSG, retain=True)
        return aiomqtt.Client(
            hostname=self.broker_host,
            port=self.broker_port,
            username=self.broker_username,
            password=self.broker_password,
            identifier=self.broker_client_id,
            will=lwt,
            tls_params=aiomqtt.TLSParameters() if self.broker_tls else None,
        )

    async def start(self) -> None:
        itr = 0
        lp = f"{self.lp}start:"
        try:
            while True:
                itr += 1
                self._connected = await self.connect()
                if self._connected:
                    if itr > 1:
                        logger.info("%s Reconnected, re-publishing state", lp)
                    self.state_updates.republish_all()
                    try:
                        await self._start_receiver(lp)
                    except aiomqtt.MqttError:
                        self._connected = False
                        continue
                else:
                    delay = self._get_connection_delay(lp)
                    logger.info(
                        "%s connecting to MQTT broker failed, sleeping for %s seconds before re-trying...",
                        lp,
                        delay,
                    )
                    await asyncio.sleep(delay)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s MQTT start() EXCEPTION", lp)

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        logger.debug("%s Connecting to MQTT broker %s:%s...", lp, self.broker_host, self.broker_port)
        self.client = self._new_client()
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as e:
            logger.error("%s Connection failed [MqttError]: %s", lp, e)
            return False
        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %s", lp, self.broker_host, self.broker_port)
        _ = await self.send_birth_msg()
        _ = await self.discovery.homeassistant_discovery()
        return True

    async def _start_receiver(self, lp: str) -> None:
        assert self.client is not None, "client must be initialized"
        topic = f"{self.topic}/+/set"
        await self.client.subscribe(topic, qos=0)
        logger.debug("%s Subscribed to %s. Waiting for MQTT messages...", lp, topic)
        try:
            await self.command_router.start_receiver_task()
        except asyncio.CancelledError:
            logger.debug("%s MQTT receiver task cancelled, propagating...", lp)
            raise
        except aiomqtt.MqttError as msg_err:
            logger.warning("%s MQTT error: %s", lp, msg_err)
            raise

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        if self._connected:
            _ = await self.send_will_msg()
        try:
            if self.client is not None:
                logger.debug("%s Disconnecting from broker...", lp)
                await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as e:
            logger.warning("%s MQTT disconnect failed: %s", lp, e)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False
            if self.start_task and not self.start_task.done():
                logger.debug("%s FINISHING: Cancelling start task", lp)
                _ = self.start_task.cancel()

    async def send_birth_msg(self) -> bool:
        return await self.publish(f"{self.topic}/availability", HVAC_BIRTH_MSG, retain=True)

    async def send_will_msg(self) -> bool:
        return await self.publish(f"{self.topic}/availability", HVAC_WILL_MSG, retain=True)

    async def publish(self, topic: str, msg_data: bytes, retain: bool = False) -> bool:
        """Publish a message to the MQTT broker."""
        lp = f"{self.lp}publish:"
        if not self._connected or self.client is None:
            return False
        try:
            _ = await self.client.publish(topic, msg_data, qos=0, retain=retain)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            self._connected = False
        else:
            return True
        return False

    async def publish_json_msg(self, topic: str, msg_data: dict[str, object], retain: bool = False) -> bool:
        return await self.publish(topic, json.dumps(msg_data).encode(), retain=retain)
