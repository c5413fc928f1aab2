"""Wire protocol of the AC unit: frame codec, stream framing and errors.

Public API:
- Frame constants and fixed frames (DISCOVERY_PROBE, STATUS_REQUEST)
- Codec functions (checksum, decode_status, patch_field, ...)
- PacketFramer for the TCP status channel
"""

from hvac_bridge.protocol.exceptions import (
    CommandError,
    HvacBridgeError,
    InvalidValueError,
    MalformedFrameError,
    NoSnapshotError,
    ProtocolError,
    TransportError,
    UnexpectedFrameError,
    UnknownEnumValueError,
)
from hvac_bridge.protocol.frame_codec import (
    DISCOVERY_PROBE,
    FRAME_TYPE_DISCOVERY_REPLY,
    FRAME_TYPE_STATUS,
    STATUS_REQUEST,
    DiscoveryReply,
    build_frame,
    checksum,
    decode_discovery_reply,
    decode_status,
    encode_value,
    frame_type,
    patch_field,
    verify_checksum,
)
from hvac_bridge.protocol.packet_framer import PacketFramer

__all__ = [
    # Fixed frames and types
    "DISCOVERY_PROBE",
    "FRAME_TYPE_DISCOVERY_REPLY",
    "FRAME_TYPE_STATUS",
    "STATUS_REQUEST",
    # Codec
    "DiscoveryReply",
    "PacketFramer",
    "build_frame",
    "checksum",
    "decode_discovery_reply",
    "decode_status",
    "encode_value",
    "frame_type",
    "patch_field",
    "verify_checksum",
    # Errors
    "CommandError",
    "HvacBridgeError",
    "InvalidValueError",
    "MalformedFrameError",
    "NoSnapshotError",
    "ProtocolError",
    "TransportError",
    "UnexpectedFrameError",
    "UnknownEnumValueError",
]
