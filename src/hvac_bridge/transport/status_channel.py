"""TCP link to the unit's status port.

The link is opened lazily by the first write and re-opened the same way after
any failure; there is no reconnect loop. Status requests go out on a fixed
timer and after every command, and a reader task cuts the incoming stream into
frames for the session's ingest callback.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import TYPE_CHECKING

from hvac_bridge import metrics
from hvac_bridge.const import HVAC_RAW, HVAC_READ_CHUNK_SIZE
from hvac_bridge.logging_abstraction import get_logger
from hvac_bridge.protocol.exceptions import TransportError
from hvac_bridge.protocol.frame_codec import STATUS_REQUEST
from hvac_bridge.protocol.packet_framer import PacketFramer

if TYPE_CHECKING:
    from hvac_bridge.structs import DeviceSession

logger = get_logger(__name__)

FrameHandler = Callable[[bytes], None]


class StatusChannel:
    lp = "status_channel:"

    def __init__(
        self,
        session: DeviceSession,
        *,
        on_frame: FrameHandler,
        poll_interval: float = 60.0,
        connect_timeout: float = 5.0,
        on_poll_failure: Callable[[int], None] | None = None,
        write_timeout: float = 2.0,
    ) -> None:
        self.session = session
        self.on_frame = on_frame
        self.poll_interval = poll_interval
        self.connect_timeout = connect_timeout
        self.write_timeout = write_timeout
        self.on_poll_failure = on_poll_failure
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self.framer = PacketFramer()
        self._reader_task: asyncio.Task[None] | None = None
        self._connect_lock = asyncio.Lock()
        self._status_waiters: list[asyncio.Future[None]] = []

    @property
    def endpoint(self) -> str:
        return f"{self.session.host}:{self.session.status_port}"

    @property
    def connected(self) -> bool:
        return self.writer is not None and not self.writer.is_closing()

    async def connect(self) -> None:
        """Open the link if it is not open yet. Raises TransportError."""
        lp = f"{self.lp}connect:"
        async with self._connect_lock:
            if self.connected:
                return
            try:
                self.reader, self.writer = await asyncio.wait_for(
                    asyncio.open_connection(self.session.host, self.session.status_port),
                    timeout=self.connect_timeout,
                )
            except TimeoutError as e:
                raise TransportError("connect timed out", self.endpoint) from e
            except OSError as e:
                raise TransportError(f"connect failed: {e}", self.endpoint) from e
            self.framer.reset()
            self._reader_task = asyncio.create_task(self._read_loop(), name="hvac_status_reader")
            logger.info("%s Connected to %s", lp, self.endpoint)

    async def write(self, data: bytes) -> None:
        """Send ``data`` over the link, opening it first when needed.

        On failure the link is closed so the next write reconnects, and
        TransportError is raised.
        """
        lp = f"{self.lp}write:"
        await self.connect()
        writer = self.writer
        if writer is None:
            raise TransportError("link closed before write", self.endpoint)
        if HVAC_RAW:
            logger.debug("%s -> %s", lp, data.hex(" "))
        try:
            writer.write(data)
            await asyncio.wait_for(writer.drain(), timeout=self.write_timeout)
        except (OSError, TimeoutError) as e:
            self.abort()
            reason = "write timed out" if isinstance(e, TimeoutError) else f"write failed: {e}"
            raise TransportError(reason, self.endpoint) from e
        logger.debug("%s Sent %d bytes", lp, len(data), extra={"endpoint": self.endpoint})

    async def request_status(self) -> None:
        await self.write(STATUS_REQUEST)

    def expect_status(self) -> asyncio.Future[None]:
        """Register interest in the next status frame before triggering it."""
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._status_waiters.append(waiter)
        return waiter

    def discard_status_waiter(self, waiter: asyncio.Future[None]) -> None:
        if waiter in self._status_waiters:
            self._status_waiters.remove(waiter)

    async def _await_status(self, waiter: asyncio.Future[None], timeout: float) -> bool:
        try:
            await asyncio.wait_for(waiter, timeout=timeout)
        except TimeoutError:
            return False
        finally:
            self.discard_status_waiter(waiter)
        return True

    async def wait_for_status(self, timeout: float, waiter: asyncio.Future[None] | None = None) -> bool:
        """Wait for the next decoded status frame. False on timeout.

        Pass a ``waiter`` from :meth:`expect_status` when the frame may arrive
        before this is awaited.
        """
        if waiter is None:
            waiter = self.expect_status()
        return await self._await_status(waiter, timeout)

    def status_received(self) -> None:
        """Release everyone waiting in :meth:`wait_for_status`."""
        waiters, self._status_waiters = self._status_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    async def poll(self) -> bool:
        """Request status and wait for the reply; count the attempt if it fails."""
        lp = f"{self.lp}poll:"
        waiter = self.expect_status()
        try:
            try:
                await self.request_status()
            except BaseException:
                self.discard_status_waiter(waiter)
                raise
            if not await self._await_status(waiter, self.connect_timeout):
                raise TransportError("no status reply", self.endpoint)
        except TransportError as e:
            self.session.poll_failures += 1
            metrics.record_poll_failure()
            logger.warning(
                "%s Status poll failed (%s), %d in a row",
                lp,
                e.reason,
                self.session.poll_failures,
                extra={"endpoint": e.endpoint},
            )
            if self.on_poll_failure is not None:
                self.on_poll_failure(self.session.poll_failures)
            return False
        self.session.poll_failures = 0
        return True

    async def run(self) -> None:
        """Poll immediately, then every ``poll_interval`` seconds, until cancelled."""
        lp = f"{self.lp}run:"
        logger.debug("%s Poll loop started (every %ss)", lp, self.poll_interval)
        try:
            while True:
                try:
                    await self.poll()
                except Exception:
                    logger.exception("%s Unexpected error while polling", lp)
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.debug("%s Poll loop cancelled", lp)
            raise

    def feed(self, data: bytes) -> None:
        """Cut received bytes into frames and hand them over in arrival order."""
        for frame in self.framer.feed(data):
            self.on_frame(frame)

    async def _read_loop(self) -> None:
        lp = f"{self.lp}read:"
        reader = self.reader
        try:
            while reader is not None:
                data = await reader.read(HVAC_READ_CHUNK_SIZE)
                if not data:
                    logger.info("%s Unit closed the connection", lp, extra={"endpoint": self.endpoint})
                    break
                if HVAC_RAW:
                    logger.debug("%s <- %s", lp, data.hex(" "))
                self.feed(data)
        except asyncio.CancelledError:
            raise
        except OSError as e:
            logger.warning("%s Read failed: %s", lp, e, extra={"endpoint": self.endpoint})
        except Exception:
            logger.exception("%s Unexpected error in read loop", lp)
        if self.reader is reader:
            self.abort()

    def abort(self) -> None:
        """Drop the link without waiting; the next write reconnects."""
        writer, self.writer, self.reader = self.writer, None, None
        self.framer.reset()
        if writer is not None:
            writer.close()
        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def close(self) -> None:
        lp = f"{self.lp}close:"
        task = self._reader_task
        writer = self.writer
        self.abort()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if writer is not None:
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug("%s %s", lp, e)
        logger.debug("%s Link closed", lp)
