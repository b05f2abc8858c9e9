from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .errors import ConnectionClosed, PeerError, ProtocolError
from .websocket import OP_TEXT, AsyncWebSocket

logger = logging.getLogger(__name__)

MessageCallback = Callable[[int, bytes], None]
CloseCallback = Callable[[int], None]
ErrorCallback = Callable[[Exception], None]
OpenCallback = Callable[[], None]


class PeerHandle:
    """
    A single live WebSocket connection and its event callbacks.

    ``start`` spawns the reader task. Events are dispatched in the order
    frames arrive; ``on_close`` fires exactly once, after any ``on_error``.
    """

    def __init__(self, ws: AsyncWebSocket, name: str = "peer") -> None:
        self.ws = ws
        self.name = name
        self._open_callbacks: list[OpenCallback] = []
        self._message_callbacks: list[MessageCallback] = []
        self._close_callbacks: list[CloseCallback] = []
        self._error_callbacks: list[ErrorCallback] = []
        self._task: asyncio.Task | None = None
        self._closed = False
        self.close_code: int | None = None

    def __repr__(self) -> str:
        return f"PeerHandle({self.name!r})"

    @property
    def closed(self) -> bool:
        return self._closed

    def on_open(self, callback: OpenCallback) -> None:
        self._open_callbacks.append(callback)

    def on_message(self, callback: MessageCallback) -> None:
        self._message_callbacks.append(callback)

    def on_close(self, callback: CloseCallback) -> None:
        self._close_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    def start(self) -> asyncio.Task:
        """Fire ``on_open`` and begin dispatching inbound messages."""
        for callback in list(self._open_callbacks):
            callback()
        self._task = asyncio.create_task(self._read_loop(), name=f"{self.name}-reader")
        return self._task

    async def wait_closed(self) -> int:
        if self._task is not None:
            await asyncio.wait({self._task})
        return self.close_code if self.close_code is not None else 1006

    async def send(self, text: str) -> None:
        if self._closed:
            raise PeerError("not connected")
        try:
            await self.ws.send_text(text)
        except ConnectionClosed:
            raise PeerError("not connected") from None
        except OSError as exc:
            raise PeerError(str(exc)) from exc

    async def close(self, code: int = 1000) -> None:
        """Close gracefully; errors from an already broken transport are dropped."""
        try:
            await self.ws.close(code)
        except Exception as exc:
            logger.debug("ignoring error while closing %s: %s", self.name, exc)
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._mark_closed(code)

    async def _read_loop(self) -> None:
        code = 1006
        try:
            while True:
                opcode, payload = await self.ws.recv()
                for callback in list(self._message_callbacks):
                    callback(opcode, payload)
        except ConnectionClosed as exc:
            code = exc.code
        except asyncio.CancelledError:
            raise
        except (ProtocolError, PeerError, OSError) as exc:
            logger.debug("%s failed: %r", self.name, exc)
            self._emit_error(exc)
            try:
                self.ws.abort()
            except Exception:
                pass
        self._mark_closed(code)

    def _emit_error(self, exc: Exception) -> None:
        for callback in list(self._error_callbacks):
            callback(exc)

    def _mark_closed(self, code: int) -> None:
        if self.close_code is not None:
            return
        self._closed = True
        self.close_code = code
        for callback in list(self._close_callbacks):
            callback(code)


def decode_message(opcode: int, payload: bytes) -> str:
    """Render an inbound message for display."""
    if opcode == OP_TEXT:
        return payload.decode("utf-8", errors="replace")
    return f"<binary {len(payload)} bytes>"
