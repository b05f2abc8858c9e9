from __future__ import annotations

import asyncio
import logging

from .console import ConsoleUI
from .errors import PeerError
from .peer import PeerHandle, decode_message

logger = logging.getLogger(__name__)

INBOUND_COLOR = "blue"
STATUS_COLOR = "green"
ERROR_COLOR = "red"
INBOUND_PREFIX = "< "


class MessageRelay:
    """
    Forward console lines to the active peer and peer messages to the console.

    The console side is bound once; peers come and go through ``attach`` and
    ``detach`` (server mode admits a new peer after the previous one left).
    """

    def __init__(self, console: ConsoleUI) -> None:
        self.console = console
        self.peer: PeerHandle | None = None
        self._pending: set[asyncio.Task] = set()
        console.on_line(self._on_line)

    def attach(self, peer: PeerHandle) -> None:
        self.peer = peer
        peer.on_message(lambda opcode, payload: self._on_message(peer, opcode, payload))
        peer.on_error(lambda exc: self._on_error(peer, exc))

    def detach(self, peer: PeerHandle) -> None:
        if self.peer is peer:
            self.peer = None

    def notice(self, message: str) -> None:
        self.console.print(message, STATUS_COLOR)

    def error(self, message: str) -> None:
        self.console.print(f"error: {message}", ERROR_COLOR)

    async def send(self, line: str) -> None:
        peer = self.peer
        if peer is None:
            self.error("not connected")
            return
        try:
            await peer.send(line)
        except PeerError as exc:
            self.error(str(exc))

    def cancel(self) -> None:
        """Drop sends that have not reached the peer yet."""
        for task in list(self._pending):
            task.cancel()

    def _on_line(self, line: str) -> None:
        task = asyncio.get_running_loop().create_task(self.send(line))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_message(self, peer: PeerHandle, opcode: int, payload: bytes) -> None:
        if peer is not self.peer:
            return
        self.console.print(INBOUND_PREFIX + decode_message(opcode, payload), INBOUND_COLOR)

    def _on_error(self, peer: PeerHandle, exc: Exception) -> None:
        if peer is not self.peer:
            return
        logger.debug("peer error on %r", peer, exc_info=exc)
        self.error(str(exc))
