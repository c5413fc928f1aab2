"""Unit tests for the TCP status channel."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from _pytest.monkeypatch import MonkeyPatch

from hvac_bridge.protocol.exceptions import TransportError
from hvac_bridge.protocol.frame_codec import STATUS_REQUEST
from hvac_bridge.structs import DeviceSession
from hvac_bridge.transport import status_channel
from hvac_bridge.transport.status_channel import StatusChannel


@pytest.fixture
def open_connection(monkeypatch: MonkeyPatch, mock_writer: MagicMock) -> AsyncMock:
    """Patch asyncio.open_connection to hand out a real reader and a mock writer."""

    async def _open(host: str, port: int):
        return asyncio.StreamReader(), mock_writer

    opener = AsyncMock(side_effect=_open)
    monkeypatch.setattr(status_channel.asyncio, "open_connection", opener)
    return opener


def make_channel(session: DeviceSession, **kwargs) -> tuple[StatusChannel, list[bytes]]:
    frames: list[bytes] = []
    kwargs.setdefault("connect_timeout", 0.05)
    channel = StatusChannel(session, on_frame=frames.append, **kwargs)
    return channel, frames


class TestStatusChannelWrite:
    @pytest.mark.asyncio
    async def test_first_write_opens_the_link(
        self, bound_session: DeviceSession, open_connection: AsyncMock, mock_writer: MagicMock
    ):
        channel, _ = make_channel(bound_session)
        await channel.request_status()
        open_connection.assert_awaited_once_with("192.168.111.20", 12416)
        mock_writer.write.assert_called_once_with(STATUS_REQUEST)
        assert channel.connected

        await channel.request_status()
        assert open_connection.await_count == 1
        await channel.close()
        assert not channel.connected

    @pytest.mark.asyncio
    async def test_connect_failure_raises_transport_error(self, bound_session: DeviceSession, monkeypatch: MonkeyPatch):
        monkeypatch.setattr(
            status_channel.asyncio,
            "open_connection",
            AsyncMock(side_effect=ConnectionRefusedError("refused")),
        )
        channel, _ = make_channel(bound_session)
        with pytest.raises(TransportError) as exc_info:
            await channel.write(STATUS_REQUEST)
        assert exc_info.value.endpoint == "192.168.111.20:12416"
        assert not channel.connected

    @pytest.mark.asyncio
    async def test_write_failure_drops_the_link(
        self, bound_session: DeviceSession, open_connection: AsyncMock, mock_writer: MagicMock
    ):
        mock_writer.drain = AsyncMock(side_effect=ConnectionResetError("reset"))
        channel, _ = make_channel(bound_session)
        with pytest.raises(TransportError, match="write failed"):
            await channel.write(STATUS_REQUEST)
        mock_writer.close.assert_called_once()
        assert channel.writer is None

        # the next write reconnects
        mock_writer.drain = AsyncMock()
        await channel.write(STATUS_REQUEST)
        assert open_connection.await_count == 2
        await channel.close()


class TestStatusChannelRead:
    def test_feed_hands_over_frames_in_order(self, bound_session: DeviceSession, status_frame: bytes):
        channel, frames = make_channel(bound_session)
        channel.feed(status_frame[:7])
        assert frames == []
        channel.feed(status_frame[7:] + status_frame)
        assert frames == [status_frame, status_frame]

    @pytest.mark.asyncio
    async def test_read_loop_ingests_stream_and_closes_on_eof(
        self,
        bound_session: DeviceSession,
        open_connection: AsyncMock,
        mock_writer: MagicMock,
        status_frame: bytes,
    ):
        channel, frames = make_channel(bound_session)
        await channel.connect()
        reader = channel.reader
        assert reader is not None

        reader.feed_data(status_frame)
        await asyncio.sleep(0.01)
        assert frames == [status_frame]

        reader.feed_eof()
        await asyncio.sleep(0.01)
        assert not channel.connected
        mock_writer.close.assert_called_once()


class TestStatusChannelPoll:
    @pytest.mark.asyncio
    async def test_wait_for_status(self, bound_session: DeviceSession):
        channel, _ = make_channel(bound_session)
        asyncio.get_running_loop().call_later(0.01, channel.status_received)
        assert await channel.wait_for_status(1.0)
        assert not await channel.wait_for_status(0.01)

    @pytest.mark.asyncio
    async def test_successful_poll_resets_failures(
        self, bound_session: DeviceSession, open_connection: AsyncMock, mock_writer: MagicMock
    ):
        channel, _ = make_channel(bound_session)
        mock_writer.drain = AsyncMock(side_effect=lambda: channel.status_received())
        bound_session.poll_failures = 2
        assert await channel.poll()
        assert bound_session.poll_failures == 0
        await channel.close()

    @pytest.mark.asyncio
    async def test_missing_reply_counts_as_failure(
        self, bound_session: DeviceSession, open_connection: AsyncMock
    ):
        on_failure = MagicMock()
        channel, _ = make_channel(bound_session, on_poll_failure=on_failure)
        assert not await channel.poll()
        assert not await channel.poll()
        assert bound_session.poll_failures == 2
        assert [c.args[0] for c in on_failure.call_args_list] == [1, 2]
        await channel.close()

    @pytest.mark.asyncio
    async def test_unreachable_unit_counts_as_failure(self, bound_session: DeviceSession, monkeypatch: MonkeyPatch):
        monkeypatch.setattr(status_channel.asyncio, "open_connection", AsyncMock(side_effect=OSError("unreachable")))
        on_failure = MagicMock()
        channel, _ = make_channel(bound_session, on_poll_failure=on_failure)
        assert not await channel.poll()
        on_failure.assert_called_once_with(1)
        assert channel._status_waiters == []
