"""TCP stream framing for the unit's status channel.

The status link is a byte stream, so one read may hold part of a frame or
several frames back to back. PacketFramer buffers bytes and cuts whole frames
using the declared length byte.
"""

from hvac_bridge.logging_abstraction import get_logger
from hvac_bridge.protocol.frame_codec import ENVELOPE_OVERHEAD, MIN_FRAME_LENGTH, SYNC_HEADER

logger = get_logger(__name__)


class PacketFramer:
    r"""Extract complete frames from a TCP byte stream.

    Algorithm:

    1. Buffer all incoming bytes
    2. Drop bytes until the buffer starts with the ``AA AA`` sync header
    3. Read the declared length at byte 2; a frame is ``length + 3`` bytes
    4. Reject lengths below the minimum envelope (resync one byte further)
    5. If the buffer holds the full frame, cut it off and repeat

    The buffer is cleared when it grows past MAX_BUFFER_SIZE without yielding
    a frame, so a peer streaming garbage cannot exhaust memory.

    Example:
        framer = PacketFramer()
        assert framer.feed(b'\xaa\xaa\x12\xa0') == []  # incomplete
        frames = framer.feed(rest_of_frame)
        assert len(frames) == 1

    """

    MAX_BUFFER_SIZE: int = 4096

    def __init__(self) -> None:
        self.buffer: bytearray = bytearray()
        self.discarded: int = 0

    def feed(self, data: bytes) -> list[bytes]:
        """Add data to the buffer and return every complete frame in arrival order."""
        self.buffer.extend(data)
        frames = self._extract_frames()
        if len(self.buffer) > self.MAX_BUFFER_SIZE:
            logger.error(
                "framer:feed: Buffer cleared, no frame found in %d bytes",
                len(self.buffer),
                extra={"buffer_size": len(self.buffer)},
            )
            self.discarded += len(self.buffer)
            self.buffer = bytearray()
        return frames

    def reset(self) -> None:
        """Forget any partial frame, e.g. after the connection was re-opened."""
        self.buffer = bytearray()

    def _resync(self) -> None:
        start = self.buffer.find(SYNC_HEADER, 1)
        if start == -1:
            # keep a trailing 0xAA, it may be the first half of the next header
            keep = 1 if self.buffer.endswith(SYNC_HEADER[:1]) else 0
            dropped = len(self.buffer) - keep
            self.buffer = self.buffer[dropped:]
        else:
            dropped = start
            self.buffer = self.buffer[start:]
        self.discarded += dropped
        logger.debug("framer:resync: Skipped %d bytes looking for a sync header", dropped)

    def _extract_frames(self) -> list[bytes]:
        frames: list[bytes] = []
        while len(self.buffer) >= len(SYNC_HEADER):
            if self.buffer[:2] != SYNC_HEADER:
                self._resync()
                continue
            if len(self.buffer) < 3:
                break

            total_length = self.buffer[2] + ENVELOPE_OVERHEAD
            if total_length < MIN_FRAME_LENGTH:
                logger.warning(
                    "framer:extract: Invalid declared length %d, resyncing",
                    self.buffer[2],
                    extra={"buffer_size": len(self.buffer)},
                )
                self._resync()
                continue

            if len(self.buffer) < total_length:
                break
            frames.append(bytes(self.buffer[:total_length]))
            self.buffer = self.buffer[total_length:]
        return frames
