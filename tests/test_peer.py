"""Tests for wsconsole.peer module."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from wsconsole.errors import ConnectionClosed, PeerError, ProtocolError
from wsconsole.peer import PeerHandle, decode_message
from wsconsole.websocket import OP_BINARY, OP_TEXT


def fake_ws(*events):
    """A socket whose recv returns or raises ``events`` in order."""
    ws = MagicMock()
    ws.recv = AsyncMock(side_effect=list(events))
    ws.send_text = AsyncMock()
    ws.close = AsyncMock()
    return ws


def record(peer):
    events = []
    peer.on_open(lambda: events.append(("open",)))
    peer.on_message(lambda opcode, payload: events.append(("message", opcode, payload)))
    peer.on_error(lambda exc: events.append(("error", type(exc).__name__)))
    peer.on_close(lambda code: events.append(("close", code)))
    return events


class TestPeerHandleEvents:
    """Tests for event dispatch order."""

    async def test_open_messages_close(self):
        """Test events arrive in order and close fires once with the code."""
        ws = fake_ws((OP_TEXT, b"one"), (OP_BINARY, b"\x00"), ConnectionClosed(1000))
        peer = PeerHandle(ws)
        events = record(peer)

        peer.start()
        code = await peer.wait_closed()

        assert code == 1000
        assert events == [
            ("open",),
            ("message", OP_TEXT, b"one"),
            ("message", OP_BINARY, b"\x00"),
            ("close", 1000),
        ]
        assert peer.closed

    async def test_protocol_error_reports_then_closes(self):
        """Test a transport failure is reported before the abnormal close."""
        ws = fake_ws(ProtocolError("bad frame"))
        peer = PeerHandle(ws)
        events = record(peer)

        peer.start()
        code = await peer.wait_closed()

        assert code == 1006
        assert events[1:] == [("error", "ProtocolError"), ("close", 1006)]
        ws.abort.assert_called_once()

    async def test_connection_reset_reports_error(self):
        ws = fake_ws(ConnectionResetError("reset"))
        peer = PeerHandle(ws)
        events = record(peer)

        peer.start()
        await peer.wait_closed()

        assert ("error", "ConnectionResetError") in events


class TestPeerHandleSend:
    """Tests for PeerHandle.send."""

    async def test_send_text(self):
        ws = fake_ws()
        peer = PeerHandle(ws)
        await peer.send("hello")
        ws.send_text.assert_awaited_once_with("hello")

    async def test_send_after_close_raises(self):
        ws = fake_ws()
        peer = PeerHandle(ws)
        await peer.close()
        with pytest.raises(PeerError, match="not connected"):
            await peer.send("late")

    async def test_send_on_vanished_socket_raises(self):
        ws = fake_ws()
        ws.send_text.side_effect = ConnectionClosed(1006)
        peer = PeerHandle(ws)
        with pytest.raises(PeerError, match="not connected"):
            await peer.send("late")

    async def test_send_os_error_wrapped(self):
        ws = fake_ws()
        ws.send_text.side_effect = BrokenPipeError("pipe")
        peer = PeerHandle(ws)
        with pytest.raises(PeerError, match="pipe"):
            await peer.send("x")


class TestPeerHandleClose:
    """Tests for close."""

    async def test_close_swallows_errors(self):
        """Test closing an already broken transport does not raise."""
        ws = fake_ws()
        ws.close.side_effect = OSError("broken")
        peer = PeerHandle(ws)
        events = record(peer)

        await peer.close()

        assert events == [("close", 1000)]

    async def test_close_fires_once(self):
        peer = PeerHandle(fake_ws())
        events = record(peer)
        await peer.close()
        await peer.close()
        assert events == [("close", 1000)]


class TestDecodeMessage:
    def test_text(self):
        assert decode_message(OP_TEXT, "héllo".encode()) == "héllo"

    def test_invalid_utf8_replaced(self):
        assert decode_message(OP_TEXT, b"\xff") == "�"

    def test_binary(self):
        assert decode_message(OP_BINARY, b"\x00\x01\x02") == "<binary 3 bytes>"
