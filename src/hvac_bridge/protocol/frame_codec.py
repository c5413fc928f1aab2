"""Encoder/decoder for the unit's fixed-layout frames.

Frame layout::

    [0xAA, 0xAA, length, type, payload..., checksum]

``length`` counts every byte after itself (type, payload and checksum), so a
frame is ``length + 3`` bytes long. The checksum is the sum of every byte
before it, modulo 256.

The unit has no separate command grammar: a command is the last status frame
received from it with exactly one field changed, which is what
:func:`patch_field` produces.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from hvac_bridge.const import YES_ANSWER
from hvac_bridge.logging_abstraction import get_logger
from hvac_bridge.protocol.exceptions import (
    InvalidValueError,
    MalformedFrameError,
    UnexpectedFrameError,
    UnknownEnumValueError,
)

if TYPE_CHECKING:
    from hvac_bridge.registry import PropertyDescriptor, PropertyRegistry

logger = get_logger(__name__)

SYNC_HEADER = b"\xaa\xaa"
# sync (2) + length (1) + type (1) + checksum (1)
MIN_FRAME_LENGTH = 5
# everything except type/payload/checksum
ENVELOPE_OVERHEAD = 3

FRAME_TYPE_DISCOVERY_PROBE = 0x02
FRAME_TYPE_DISCOVERY_REPLY = 0x03
FRAME_TYPE_STATUS = 0xA0
DISCOVERY_REPLY_LENGTH = 0x0C

NO_ANSWER = ("false", "0", "no", "n", "f", 0, "off")


@dataclass(frozen=True)
class DiscoveryReply:
    id: str
    name: str


def checksum(data: bytes | bytearray) -> int:
    """Sum of ``data`` modulo 256."""
    return sum(data) & 0xFF


def build_frame(frame_type: int, payload: bytes) -> bytes:
    """Wrap ``payload`` in the sync header, length, type and checksum."""
    length = len(payload) + 2
    if length > 0xFF:
        msg = f"Payload of {len(payload)} bytes does not fit a single length byte"
        raise ValueError(msg)
    body = SYNC_HEADER + bytes([length, frame_type]) + bytes(payload)
    return body + bytes([checksum(body)])


def verify_checksum(frame: bytes | bytearray) -> bool:
    """True when the trailing byte equals the checksum of everything before it."""
    if len(frame) < MIN_FRAME_LENGTH:
        return False
    return frame[-1] == checksum(frame[:-1])


DISCOVERY_PROBE: bytes = build_frame(FRAME_TYPE_DISCOVERY_PROBE, b"\xff\xff\xff\x00")
STATUS_REQUEST: bytes = build_frame(FRAME_TYPE_STATUS, b"\x0a\x0a" + bytes(14))


def _check_envelope(data: bytes | bytearray) -> None:
    if len(data) < MIN_FRAME_LENGTH:
        reason = "too_short"
        raise MalformedFrameError(reason, bytes(data))
    if data[:2] != SYNC_HEADER:
        reason = "bad_header"
        raise MalformedFrameError(reason, bytes(data))


def _check_declared_length(data: bytes | bytearray) -> None:
    if len(data) != data[2] + ENVELOPE_OVERHEAD:
        reason = "length_mismatch"
        raise MalformedFrameError(reason, bytes(data))


def frame_type(data: bytes | bytearray) -> int:
    """Return the type byte of a structurally valid frame."""
    _check_envelope(data)
    return data[3]


def decode_discovery_reply(data: bytes | bytearray) -> DiscoveryReply:
    """Decode the unit's answer to the discovery probe.

    Payload bytes 4..7 carry the device id, bytes 8..13 an ASCII display name
    padded with NUL or spaces.

    Raises:
        MalformedFrameError: frame is truncated or the sync header is wrong
        UnexpectedFrameError: length/type do not mark a discovery reply

    """
    _check_envelope(data)
    if data[2] != DISCOVERY_REPLY_LENGTH or data[3] != FRAME_TYPE_DISCOVERY_REPLY:
        reason = "not_discovery_reply"
        raise UnexpectedFrameError(reason, bytes(data))
    if len(data) < DISCOVERY_REPLY_LENGTH + ENVELOPE_OVERHEAD:
        reason = "truncated_discovery_reply"
        raise MalformedFrameError(reason, bytes(data))

    device_id = bytes(data[4:8]).hex()
    name = bytes(data[8:14]).decode("ascii", errors="replace").strip("\x00 ")
    return DiscoveryReply(id=device_id, name=name or f"AC-{device_id}")


def decode_status(data: bytes | bytearray, registry: PropertyRegistry) -> dict[str, str | int]:
    """Decode every registry field of a status frame.

    Enumerated fields decode to their label, raw fields to the integer. A code
    with no label decodes to the raw integer so one unknown value does not
    discard the whole frame.
    """
    _check_envelope(data)
    _check_declared_length(data)
    trailer = len(data) - 1
    properties: dict[str, str | int] = {}
    for descriptor in registry:
        if descriptor.offset >= trailer:
            reason = "field_out_of_range"
            raise MalformedFrameError(reason, bytes(data))
        raw = (data[descriptor.offset] & descriptor.mask) >> descriptor.shift
        if descriptor.values is None:
            properties[descriptor.name] = raw
            continue
        label = descriptor.labels.get(raw)
        if label is None:
            logger.debug(
                "codec:decode_status: no label for %s code %d, passing raw value",
                descriptor.name,
                raw,
            )
            properties[descriptor.name] = raw
        else:
            properties[descriptor.name] = label
    return properties


def _coerce_boolean(descriptor: PropertyDescriptor, value: object) -> str:
    if isinstance(value, bool):
        return "on" if value else "off"
    probe = value.strip().casefold() if isinstance(value, str) else value
    if probe in YES_ANSWER:
        return "on"
    if probe in NO_ANSWER:
        return "off"
    raise UnknownEnumValueError(descriptor.name, value, ["on", "off"])


def _find_label(values: Mapping[str, int], value: str) -> str | None:
    if value in values:
        return value
    folded = value.strip().casefold()
    for label in values:
        if label.casefold() == folded:
            return label
    return None


def encode_value(descriptor: PropertyDescriptor, value: object) -> int:
    """Translate a label or number to the integer stored in the field's bits.

    Raises:
        UnknownEnumValueError: label is not defined for an enumerated field
        InvalidValueError: raw value is not a number or is out of range

    """
    if descriptor.values is not None:
        if descriptor.boolean:
            return descriptor.values[_coerce_boolean(descriptor, value)]
        label = _find_label(descriptor.values, value) if isinstance(value, str) else None
        if label is None:
            raise UnknownEnumValueError(descriptor.name, value, list(descriptor.values))
        return descriptor.values[label]

    if isinstance(value, bool):
        msg = f"{descriptor.name} expects a number, got {value!r}"
        raise InvalidValueError(msg, descriptor.name, value)
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        msg = f"{descriptor.name} expects a number, got {value!r}"
        raise InvalidValueError(msg, descriptor.name, value) from e
    if not number.is_integer():
        msg = f"{descriptor.name} expects a whole number, got {value!r}"
        raise InvalidValueError(msg, descriptor.name, value)
    wire = int(number)
    if not descriptor.min_value <= wire <= descriptor.max_value:  # type: ignore[operator]
        msg = f"{descriptor.name} must be within {descriptor.min_value}..{descriptor.max_value}, got {wire}"
        raise InvalidValueError(msg, descriptor.name, value)
    return wire


def patch_field(last_frame: bytes | bytearray, descriptor: PropertyDescriptor, value: object) -> bytes:
    """Copy ``last_frame`` with one field set to ``value`` and a fresh checksum.

    Every other bit of the frame is preserved, including bits of the same byte
    that belong to other fields.
    """
    wire = encode_value(descriptor, value)
    _check_envelope(last_frame)
    _check_declared_length(last_frame)
    if descriptor.offset >= len(last_frame) - 1:
        reason = "field_out_of_range"
        raise MalformedFrameError(reason, bytes(last_frame))

    frame = bytearray(last_frame)
    frame[descriptor.offset] = (frame[descriptor.offset] & ~descriptor.mask & 0xFF) | (
        (wire << descriptor.shift) & descriptor.mask
    )
    frame[-1] = checksum(frame[:-1])
    return bytes(frame)
