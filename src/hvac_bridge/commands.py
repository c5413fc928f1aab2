"""Set-requests to the unit.

Every command is the session's last status frame with exactly one field
patched. There is no queue: each command is built against whatever snapshot
is current when it is issued, so the last write wins.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hvac_bridge import metrics
from hvac_bridge.logging_abstraction import correlation_scope, get_logger
from hvac_bridge.protocol.exceptions import CommandError, InvalidValueError, NoSnapshotError, TransportError
from hvac_bridge.protocol.frame_codec import patch_field

if TYPE_CHECKING:
    from hvac_bridge.structs import DeviceSession
    from hvac_bridge.transport.status_channel import StatusChannel

logger = get_logger(__name__)


class CommandDispatcher:
    lp = "commands:"

    def __init__(self, session: DeviceSession, channel: StatusChannel) -> None:
        self.session = session
        self.channel = channel

    def build_command(self, name: str, value: object) -> bytes:
        """Validate a set-request and return the frame that would be sent.

        Raises:
            InvalidValueError: unknown or read-only property, or value out of domain
            UnknownEnumValueError: label not defined for the property
            NoSnapshotError: no status frame has been received yet

        """
        descriptor = self.session.registry.get(name)
        if descriptor is None:
            msg = f"Unknown property: {name}"
            raise InvalidValueError(msg, name, value)
        if not descriptor.settable:
            msg = f"Property {name} is read-only"
            raise InvalidValueError(msg, name, value)
        if self.session.last_frame is None:
            raise NoSnapshotError(name, value)
        return patch_field(self.session.last_frame, descriptor, value)

    async def set_property(self, name: str, value: object) -> bytes:
        """Patch one field, send the frame and ask the unit for fresh status.

        Validation errors are raised before any byte is written. A failed
        write raises TransportError; the link reconnects on the next write.
        """
        lp = f"{self.lp}set_property:"
        with correlation_scope():
            try:
                frame = self.build_command(name, value)
            except CommandError as e:
                metrics.record_command(name, "rejected")
                logger.warning("%s Rejected %s=%r: %s", lp, name, value, e)
                raise

            try:
                await self.channel.write(frame)
            except TransportError as e:
                metrics.record_command(name, "error")
                logger.error("%s Could not send %s=%r: %s", lp, name, value, e.reason)
                raise
            metrics.record_command(name, "sent")
            logger.info("%s %s -> %r", lp, name, value, extra={"device_id": self.session.id})

            try:
                await self.channel.request_status()
            except TransportError as e:
                logger.warning("%s Status refresh after %s failed: %s", lp, name, e.reason)
            return frame

    async def set_power(self, value: object) -> bytes:
        return await self.set_property("power", value)

    async def set_mode(self, value: object) -> bytes:
        return await self.set_property("mode", value)

    async def set_temperature(self, value: object) -> bytes:
        return await self.set_property("temperature", value)

    async def set_fan_speed(self, value: object) -> bytes:
        return await self.set_property("fan_speed", value)

    async def set_swing_horizontal(self, value: object) -> bytes:
        return await self.set_property("swing_horizontal", value)

    async def set_swing_vertical(self, value: object) -> bytes:
        return await self.set_property("swing_vertical", value)

    async def set_lights(self, value: object) -> bytes:
        return await self.set_property("lights", value)

    async def set_health(self, value: object) -> bytes:
        return await self.set_property("health", value)

    async def set_sleep(self, value: object) -> bytes:
        return await self.set_property("sleep", value)

    async def set_quiet(self, value: object) -> bytes:
        return await self.set_property("quiet", value)

    async def set_blow(self, value: object) -> bytes:
        return await self.set_property("blow", value)

    async def set_air(self, value: object) -> bytes:
        return await self.set_property("air", value)

    async def set_turbo(self, value: object) -> bytes:
        return await self.set_property("turbo", value)

    async def set_energy_save(self, value: object) -> bytes:
        return await self.set_property("energy_save", value)
