"""Core data structures for the HVAC bridge."""

from __future__ import annotations

import os
from argparse import Namespace
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel

from hvac_bridge.const import (
    HVAC_CONNECT_TIMEOUT,
    HVAC_DEVICE_NAME,
    HVAC_DISCOVERY_PORT,
    HVAC_DISCOVERY_RETRY_DELAY,
    HVAC_HOST,
    HVAC_MAX_POLL_FAILURES,
    HVAC_MQTT_BROKER_URL,
    HVAC_MQTT_CONN_DELAY,
    HVAC_MQTT_PASSWORD,
    HVAC_MQTT_TOPIC_PREFIX,
    HVAC_MQTT_USERNAME,
    HVAC_POLL_INTERVAL,
    HVAC_REGISTRY_FILE,
    HVAC_STATUS_PORT,
)
from hvac_bridge.protocol.frame_codec import DiscoveryReply, decode_status
from hvac_bridge.registry import PropertyRegistry


class SessionState(StrEnum):
    UNBOUND = "unbound"
    DISCOVERING = "discovering"
    BOUND = "bound"
    POLLING = "polling"


@dataclass(frozen=True)
class SessionInfo:
    """Identity and endpoints of a bound unit, as handed to subscribers."""

    id: str
    name: str
    host: str
    discovery_port: int
    status_port: int


@dataclass
class DeviceSession:
    """Everything known about the single unit the bridge talks to.

    ``last_frame`` is the authoritative snapshot of on-device state and
    ``properties`` is always its decoded form. Both are written only by
    :meth:`apply_status_frame`, which replaces them together.
    """

    host: str
    discovery_port: int
    status_port: int
    registry: PropertyRegistry = field(default_factory=PropertyRegistry, repr=False)
    id: str | None = None
    name: str | None = None
    state: SessionState = SessionState.UNBOUND
    last_frame: bytes | None = field(default=None, repr=False)
    properties: dict[str, str | int] = field(default_factory=dict, repr=False)
    poll_failures: int = 0
    status_count: int = 0

    @property
    def bound(self) -> bool:
        return self.id is not None

    @property
    def has_snapshot(self) -> bool:
        return self.last_frame is not None

    def bind(self, reply: DiscoveryReply, host: str, port: int) -> bool:
        """Record the unit's identity and address.

        Returns True on the first bind. Later replies only refresh the address;
        the snapshot is never touched here.
        """
        first = self.id is None
        if first:
            self.id = reply.id
            self.name = reply.name
        self.update_address(host, port)
        return first

    def update_address(self, host: str, port: int) -> None:
        self.host = host
        self.discovery_port = port

    def apply_status_frame(self, frame: bytes) -> dict[str, str | int]:
        """Replace the snapshot with ``frame`` and recompute ``properties``.

        Decoding happens first, so a malformed frame raises without touching
        the session.
        """
        properties = decode_status(frame, self.registry)
        self.last_frame = bytes(frame)
        self.properties = properties
        self.status_count += 1
        return properties

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id or "",
            name=self.name or "",
            host=self.host,
            discovery_port=self.discovery_port,
            status_port=self.status_port,
        )


class BridgeEnv(BaseModel):
    """Runtime settings, seeded from HVAC_* environment variables."""

    host: str = HVAC_HOST
    discovery_port: int = HVAC_DISCOVERY_PORT
    status_port: int = HVAC_STATUS_PORT
    poll_interval: float = HVAC_POLL_INTERVAL
    discovery_retry_delay: float = HVAC_DISCOVERY_RETRY_DELAY
    max_poll_failures: int = HVAC_MAX_POLL_FAILURES
    connect_timeout: float = HVAC_CONNECT_TIMEOUT
    registry_file: str | None = HVAC_REGISTRY_FILE
    device_name: str = HVAC_DEVICE_NAME
    mqtt_broker_url: str = HVAC_MQTT_BROKER_URL
    mqtt_topic_prefix: str = HVAC_MQTT_TOPIC_PREFIX
    mqtt_username: str | None = HVAC_MQTT_USERNAME
    mqtt_password: str | None = HVAC_MQTT_PASSWORD
    mqtt_conn_delay: int = HVAC_MQTT_CONN_DELAY


class BridgeSettings:
    """Holds the effective :class:`BridgeEnv`: environment first, CLI flags on top."""

    # argparse dest -> BridgeEnv field
    CLI_FIELDS = {
        "hvac_host": "host",
        "discovery_port": "discovery_port",
        "status_port": "status_port",
        "interval": "poll_interval",
        "registry": "registry_file",
        "mqtt_broker_url": "mqtt_broker_url",
        "mqtt_topic_prefix": "mqtt_topic_prefix",
        "mqtt_username": "mqtt_username",
        "mqtt_password": "mqtt_password",
    }

    def __init__(self, env: BridgeEnv | None = None) -> None:
        self.env: BridgeEnv = env or BridgeEnv()

    def reload_env(self) -> BridgeEnv:
        """Re-read the environment, e.g. after a dotenv file was loaded."""
        self.env = BridgeEnv.model_validate(
            {
                "host": os.environ.get("HVAC_HOST", self.env.host),
                "discovery_port": os.environ.get("HVAC_DISCOVERY_PORT") or self.env.discovery_port,
                "status_port": os.environ.get("HVAC_STATUS_PORT") or self.env.status_port,
                "poll_interval": os.environ.get("HVAC_POLL_INTERVAL") or self.env.poll_interval,
                "discovery_retry_delay": os.environ.get("HVAC_DISCOVERY_RETRY_DELAY")
                or self.env.discovery_retry_delay,
                "max_poll_failures": os.environ.get("HVAC_MAX_POLL_FAILURES") or self.env.max_poll_failures,
                "connect_timeout": os.environ.get("HVAC_CONNECT_TIMEOUT") or self.env.connect_timeout,
                "registry_file": os.environ.get("HVAC_REGISTRY_FILE") or self.env.registry_file,
                "device_name": os.environ.get("HVAC_DEVICE_NAME", self.env.device_name),
                "mqtt_broker_url": os.environ.get("HVAC_MQTT_BROKER_URL", self.env.mqtt_broker_url),
                "mqtt_topic_prefix": os.environ.get("HVAC_MQTT_TOPIC_PREFIX", self.env.mqtt_topic_prefix),
                "mqtt_username": os.environ.get("HVAC_MQTT_USERNAME") or self.env.mqtt_username,
                "mqtt_password": os.environ.get("HVAC_MQTT_PASSWORD") or self.env.mqtt_password,
                "mqtt_conn_delay": os.environ.get("HVAC_MQTT_CONN_DELAY") or self.env.mqtt_conn_delay,
            }
        )
        return self.env

    def apply_cli_args(self, args: Namespace) -> BridgeEnv:
        """Override settings with every CLI flag the user actually passed."""
        updates = {
            env_field: getattr(args, dest)
            for dest, env_field in self.CLI_FIELDS.items()
            if getattr(args, dest, None) is not None
        }
        if updates:
            self.env = BridgeEnv.model_validate({**self.env.model_dump(), **updates})
        return self.env
