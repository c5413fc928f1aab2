"""Exception hierarchy for the HVAC bridge.

Protocol errors mean a received frame is unusable and gets dropped. Transport
errors mean a socket could not be bound, connected or written. Command errors
reject a set-request before anything is transmitted.
"""

from __future__ import annotations


class HvacBridgeError(Exception):
    """Base exception for every error raised by the bridge."""


class ProtocolError(HvacBridgeError):
    """A frame received from the unit cannot be used.

    Attributes:
        reason: Short machine-friendly reason (e.g. "too_short", "bad_header")
        data_preview: First 16 bytes of the offending frame

    """

    _label = "Protocol error"

    def __init__(self, reason: str, data: bytes = b"") -> None:
        self.reason = reason
        self.data_preview = bytes(data[:16]) if data else b""
        super().__init__(f"{self._label}: {reason}")


class MalformedFrameError(ProtocolError):
    """Frame is truncated, has a bad sync header, or lacks a field's byte."""

    _label = "Malformed frame"


class UnexpectedFrameError(ProtocolError):
    """Frame is well formed but its length/type is not what the caller expects."""

    _label = "Unexpected frame"


class TransportError(HvacBridgeError):
    """Socket bind, connect, send or receive failure.

    Attributes:
        reason: Specific failure reason
        endpoint: ``host:port`` the operation targeted, if known

    """

    def __init__(self, reason: str, endpoint: str = "") -> None:
        self.reason = reason
        self.endpoint = endpoint
        where = f" ({endpoint})" if endpoint else ""
        super().__init__(f"Transport error{where}: {reason}")


class CommandError(HvacBridgeError):
    """A set-request was rejected; no bytes were sent."""

    def __init__(self, message: str, property_name: str | None = None, value: object = None) -> None:
        self.property_name = property_name
        self.value = value
        super().__init__(message)


class NoSnapshotError(CommandError):
    """No status frame has been received yet, so there is nothing to patch."""

    def __init__(self, property_name: str | None = None, value: object = None) -> None:
        super().__init__(
            f"Cannot set {property_name or 'property'}: no status frame received from the unit yet",
            property_name,
            value,
        )


class InvalidValueError(CommandError):
    """Value is outside the property's domain, or the property is not settable."""


class UnknownEnumValueError(InvalidValueError):
    """Label is not one of the property's enumerated values."""

    def __init__(self, property_name: str, value: object, allowed: list[str] | None = None) -> None:
        self.allowed = allowed or []
        choices = f" (expected one of: {', '.join(self.allowed)})" if self.allowed else ""
        super().__init__(f"Unknown value {value!r} for {property_name}{choices}", property_name, value)
