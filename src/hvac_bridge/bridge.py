"""The bridge core: one DeviceSession and the components working on it."""

from __future__ import annotations

import asyncio

from hvac_bridge import metrics
from hvac_bridge.commands import CommandDispatcher
from hvac_bridge.events import DeviceBound, EventBus, SessionStateChanged
from hvac_bridge.logging_abstraction import correlation_scope, get_logger
from hvac_bridge.protocol.exceptions import ProtocolError
from hvac_bridge.protocol.frame_codec import FRAME_TYPE_STATUS, DiscoveryReply, frame_type
from hvac_bridge.registry import PropertyRegistry
from hvac_bridge.state_sync import StateSynchronizer
from hvac_bridge.structs import BridgeEnv, DeviceSession, SessionState
from hvac_bridge.transport.discovery import DiscoverySession
from hvac_bridge.transport.status_channel import StatusChannel

logger = get_logger(__name__)


class HvacBridge:
    """Owns the session and wires discovery, polling, sync and commands together.

    Subscribers use ``bridge.events.subscribe(EventType, handler)`` for
    :class:`DeviceBound`, :class:`StatusChanged` and
    :class:`SessionStateChanged`, and call :meth:`set_property` to control
    the unit.
    """

    lp = "bridge:"

    def __init__(
        self,
        settings: BridgeEnv,
        registry: PropertyRegistry | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.settings = settings
        self.events = events or EventBus()
        self.session = DeviceSession(
            host=settings.host,
            discovery_port=settings.discovery_port,
            status_port=settings.status_port,
            registry=registry or PropertyRegistry(),
        )
        self.sync = StateSynchronizer(self.events)
        self.discovery = DiscoverySession(
            self.session,
            broadcast_host=settings.host,
            port=settings.discovery_port,
            on_reply=self.handle_discovery_reply,
            on_frame=self.handle_frame,
            on_probe_sent=self._probe_sent,
            retry_delay=settings.discovery_retry_delay,
        )
        self.channel = StatusChannel(
            self.session,
            on_frame=self.handle_frame,
            poll_interval=settings.poll_interval,
            connect_timeout=settings.connect_timeout,
            on_poll_failure=self._poll_failed,
        )
        self.commands = CommandDispatcher(self.session, self.channel)
        self.running: bool = False
        self._discovery_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def properties(self) -> dict[str, str | int]:
        return dict(self.session.properties)

    def _transition(self, new: SessionState) -> None:
        old = self.session.state
        if old == new:
            return
        self.session.state = new
        metrics.record_session_state(new.value)
        logger.info("%s Session %s -> %s", self.lp, old.value, new.value, extra={"device_id": self.session.id})
        self.events.publish(SessionStateChanged(old, new))

    def _probe_sent(self) -> None:
        if self.session.state == SessionState.UNBOUND:
            self._transition(SessionState.DISCOVERING)

    def handle_discovery_reply(self, reply: DiscoveryReply, host: str, port: int) -> None:
        lp = f"{self.lp}handle_discovery_reply:"
        first = self.session.bind(reply, host, port)
        if not first and self.session.state in (SessionState.BOUND, SessionState.POLLING):
            logger.debug("%s Address refreshed to %s:%s", lp, host, port)
            return

        logger.info(
            "%s Bound to '%s'",
            lp,
            self.session.name,
            extra={"device_id": self.session.id, "host": host, "port": port},
        )
        self._transition(SessionState.BOUND)
        self.events.publish(DeviceBound(self.session.info()))
        self._start_polling()

    def handle_frame(self, frame: bytes) -> None:
        """Ingest one frame received on either transport."""
        lp = f"{self.lp}handle_frame:"
        with correlation_scope():
            try:
                kind = frame_type(frame)
                if kind != FRAME_TYPE_STATUS:
                    logger.debug("%s Ignoring frame type 0x%02x", lp, kind)
                    metrics.record_frame_received(kind, "ignored")
                    return
                if not self.session.bound:
                    logger.debug("%s Status frame before discovery, dropped", lp)
                    metrics.record_frame_received(kind, "unbound")
                    return
                properties = self.session.apply_status_frame(frame)
            except ProtocolError as e:
                logger.warning(
                    "%s Dropping frame: %s",
                    lp,
                    e.reason,
                    extra={"preview": e.data_preview.hex(" ")},
                )
                metrics.record_decode_error(e.reason)
                return

            metrics.record_frame_received(kind, "ok")
            if self.session.state == SessionState.BOUND:
                self._transition(SessionState.POLLING)
            self.sync.sync(properties)
            self.channel.status_received()

    def _start_polling(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self.channel.run(), name="hvac_status_poll")

    def _poll_failed(self, count: int) -> None:
        limit = self.settings.max_poll_failures
        if not limit or count < limit:
            return
        logger.warning(
            "%s %d polls failed in a row, looking for the unit again",
            self.lp,
            count,
            extra={"device_id": self.session.id},
        )
        self.session.poll_failures = 0
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self.channel.abort()
        self._transition(SessionState.DISCOVERING)
        self.discovery.rediscover()

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        if self.running:
            return
        self.running = True
        metrics.record_session_state(self.session.state.value)
        logger.info(
            "%s Looking for the unit via %s:%s",
            lp,
            self.settings.host,
            self.settings.discovery_port,
        )
        self._discovery_task = asyncio.create_task(self.discovery.run(), name="hvac_discovery")

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        self.running = False
        tasks = [t for t in (self._discovery_task, self._poll_task) if t is not None]
        self._discovery_task = self._poll_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.channel.close()
        self.discovery.close()
        await self.events.drain()
        logger.info("%s Bridge stopped", lp)

    async def set_property(self, name: str, value: object) -> bytes:
        return await self.commands.set_property(name, value)

    def expect_status(self) -> asyncio.Future[None]:
        return self.channel.expect_status()

    def discard_status_waiter(self, waiter: asyncio.Future[None]) -> None:
        self.channel.discard_status_waiter(waiter)

    async def wait_for_status(self, timeout: float, waiter: asyncio.Future[None] | None = None) -> bool:
        return await self.channel.wait_for_status(timeout, waiter)
