"""Shared fixtures for unit tests.

This module provides reusable frames and mocks for testing the HVAC bridge.
"""

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from hvac_bridge.protocol.frame_codec import FRAME_TYPE_STATUS, build_frame
from hvac_bridge.registry import PropertyRegistry
from hvac_bridge.structs import BridgeEnv, DeviceSession

# byte 4: power off, mode cool, fan l2
# byte 5: target 24 C
# byte 6: swing_vertical full, swing_horizontal default
# byte 7: lights on
# byte 8: quiet off, air off
# byte 9: indoor 23 C
STATUS_PAYLOAD = bytes([0x12, 0x18, 0x01, 0x01, 0x00, 0x17]) + bytes(10)


def make_status_frame(payload: bytes = STATUS_PAYLOAD) -> bytes:
    return build_frame(FRAME_TYPE_STATUS, payload)


def make_discovery_reply(device_id: bytes = b"\x01\x02\x03\x04", name: bytes = b"LIVING") -> bytes:
    """Discovery reply frame: length 0x0C, type 0x03, id then padded name."""
    payload = device_id + name.ljust(6, b"\x00")[:6]
    return build_frame(0x03, payload)


@pytest.fixture
def status_frame_factory() -> Callable[..., bytes]:
    return make_status_frame


@pytest.fixture
def discovery_reply_factory() -> Callable[..., bytes]:
    return make_discovery_reply


@pytest.fixture
def registry() -> PropertyRegistry:
    return PropertyRegistry()


@pytest.fixture
def status_frame() -> bytes:
    """Status frame with the unit powered off in cool mode at 24 C."""
    return make_status_frame()


@pytest.fixture
def session(registry: PropertyRegistry) -> DeviceSession:
    return DeviceSession(host="192.168.111.255", discovery_port=12414, status_port=12416, registry=registry)


@pytest.fixture
def bound_session(session: DeviceSession, status_frame: bytes) -> DeviceSession:
    """Session bound to unit 01020304 with a status snapshot applied."""
    session.id = "01020304"
    session.name = "LIVING"
    session.host = "192.168.111.20"
    _ = session.apply_status_frame(status_frame)
    return session


@pytest.fixture
def bridge_env() -> BridgeEnv:
    return BridgeEnv(
        host="192.168.111.255",
        discovery_port=12414,
        status_port=12416,
        poll_interval=60.0,
        discovery_retry_delay=60.0,
        max_poll_failures=3,
        connect_timeout=0.05,
        registry_file=None,
        device_name="AC Livingroom",
        mqtt_broker_url="mqtt://broker.local:1883",
        mqtt_topic_prefix="hvac",
    )


@pytest.fixture
def mock_writer() -> MagicMock:
    """Mock asyncio.StreamWriter."""
    writer: MagicMock = MagicMock()
    writer.is_closing = MagicMock(return_value=False)
    writer.close = MagicMock()
    writer.wait_closed = AsyncMock()
    writer.drain = AsyncMock()
    writer.write = MagicMock()
    return writer


@pytest.fixture
def mock_channel() -> MagicMock:
    """Mock StatusChannel recording every written frame."""
    channel: MagicMock = MagicMock()
    channel.write = AsyncMock()
    channel.request_status = AsyncMock()
    channel.wait_for_status = AsyncMock(return_value=True)
    return channel


@pytest.fixture
def mock_mqtt_client() -> AsyncMock:
    """Mock MQTT client for testing.

    Returns an AsyncMock configured with common MQTT client methods.
    """
    client: AsyncMock = AsyncMock()
    client.publish = AsyncMock()
    client.subscribe = AsyncMock()
    client._connected = True
    return client
