"""UDP discovery of the AC unit.

The probe is broadcast to the configured address; the unit answers on the
ephemeral port the probe was sent from. The same socket also carries any other
frame the unit decides to send over UDP, so datagrams are discriminated by
frame type only.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from typing_extensions import override

from hvac_bridge import metrics
from hvac_bridge.const import HVAC_RAW, RAW_MSG
from hvac_bridge.logging_abstraction import correlation_scope, get_logger
from hvac_bridge.protocol.exceptions import ProtocolError, TransportError
from hvac_bridge.protocol.frame_codec import (
    DISCOVERY_PROBE,
    FRAME_TYPE_DISCOVERY_REPLY,
    DiscoveryReply,
    decode_discovery_reply,
    frame_type,
)
from hvac_bridge.structs import SessionState

if TYPE_CHECKING:
    from hvac_bridge.structs import DeviceSession

logger = get_logger(__name__)

ReplyHandler = Callable[[DiscoveryReply, str, int], None]
FrameHandler = Callable[[bytes], None]


class DiscoveryProtocol(asyncio.DatagramProtocol):
    """Hands every received datagram to :meth:`DiscoverySession.handle_datagram`."""

    def __init__(self, discovery: DiscoverySession) -> None:
        self.discovery = discovery

    @override
    def datagram_received(self, data: bytes, addr: tuple[str | object, int]) -> None:
        self.discovery.handle_datagram(data, addr)

    @override
    def error_received(self, exc: Exception) -> None:
        logger.warning("discovery:error_received: %s", exc, extra={"error": type(exc).__name__})

    @override
    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("discovery:connection_lost: %s", exc)
        self.discovery.transport_lost()


class DiscoverySession:
    """Broadcasts the discovery probe until the unit answers.

    While the session is unbound or discovering, :meth:`run` re-broadcasts the
    probe every ``retry_delay`` seconds. Bind and send failures are logged and
    retried after the same delay without changing the session state. Once
    bound the loop idles until :meth:`rediscover` wakes it.
    """

    lp = "discovery:"

    def __init__(
        self,
        session: DeviceSession,
        *,
        broadcast_host: str,
        port: int,
        on_reply: ReplyHandler,
        on_frame: FrameHandler,
        on_probe_sent: Callable[[], None] | None = None,
        retry_delay: float = 60.0,
        bind_host: str = "0.0.0.0",  # noqa: S104
    ) -> None:
        self.session = session
        self.broadcast_host = broadcast_host
        self.port = port
        self.on_reply = on_reply
        self.on_frame = on_frame
        self.on_probe_sent = on_probe_sent
        self.retry_delay = retry_delay
        self.bind_host = bind_host
        self.transport: asyncio.DatagramTransport | None = None
        self.probes_sent: int = 0
        self._wake = asyncio.Event()

    @property
    def needs_probe(self) -> bool:
        return self.session.state in (SessionState.UNBOUND, SessionState.DISCOVERING)

    async def open(self) -> asyncio.DatagramTransport:
        """Bind the UDP endpoint with SO_BROADCAST, reusing an open one."""
        if self.transport is not None and not self.transport.is_closing():
            return self.transport
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: DiscoveryProtocol(self),
                local_addr=(self.bind_host, 0),
                allow_broadcast=True,
            )
        except OSError as e:
            raise TransportError(f"bind failed: {e}", f"{self.bind_host}:0") from e
        self.transport = transport
        return transport

    def send_datagram(self, data: bytes, host: str, port: int) -> None:
        if self.transport is None or self.transport.is_closing():
            raise TransportError("datagram endpoint is not open", f"{host}:{port}")
        try:
            self.transport.sendto(data, (host, port))
        except OSError as e:
            raise TransportError(f"send failed: {e}", f"{host}:{port}") from e

    async def probe(self) -> bool:
        """Broadcast the discovery probe once. Returns False on a transport error."""
        lp = f"{self.lp}probe:"
        try:
            await self.open()
            self.send_datagram(DISCOVERY_PROBE, self.broadcast_host, self.port)
        except TransportError as e:
            logger.warning(
                "%s Unable to broadcast probe (%s), retrying in %ss",
                lp,
                e.reason,
                self.retry_delay,
                extra={"endpoint": e.endpoint},
            )
            metrics.record_discovery_probe("error")
            self.close()
            return False

        self.probes_sent += 1
        metrics.record_discovery_probe("sent")
        logger.info("%s Probe broadcast to %s:%s", lp, self.broadcast_host, self.port)
        if self.on_probe_sent is not None:
            self.on_probe_sent()
        return True

    async def run(self) -> None:
        lp = f"{self.lp}run:"
        logger.debug("%s Discovery loop started", lp)
        try:
            while True:
                if not self.needs_probe:
                    self._wake.clear()
                    await self._wake.wait()
                    continue
                try:
                    await self.probe()
                except Exception:
                    logger.exception("%s Unexpected error while probing", lp)
                await asyncio.sleep(self.retry_delay)
        except asyncio.CancelledError:
            logger.debug("%s Discovery loop cancelled", lp)
            raise

    def rediscover(self) -> None:
        """Wake the loop so it starts probing again."""
        self._wake.set()

    def handle_datagram(self, data: bytes, addr: tuple[str | object, int]) -> None:
        """Route one received datagram: discovery replies bind, anything else is ingested."""
        lp = f"{self.lp}handle_datagram:"
        host, port = str(addr[0]), int(addr[1])
        with correlation_scope():
            if HVAC_RAW:
                logger.debug("%s %s:%s -> %s", lp, host, port, data.hex(" "))
            try:
                kind = frame_type(data)
                if kind != FRAME_TYPE_DISCOVERY_REPLY:
                    self.on_frame(data)
                    return
                reply = decode_discovery_reply(data)
            except ProtocolError as e:
                logger.warning(
                    "%s Dropping datagram from %s: %s.%s",
                    lp,
                    host,
                    e.reason,
                    RAW_MSG,
                    extra={"preview": e.data_preview.hex(" ")},
                )
                metrics.record_decode_error(e.reason)
                return
            metrics.record_frame_received(kind, "ok")
            self.on_reply(reply, host, port)

    def transport_lost(self) -> None:
        self.transport = None

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()
            self.transport = None
