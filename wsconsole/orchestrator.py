from __future__ import annotations

import asyncio
import enum
import logging
import signal

from .admission import Admission, AdmissionPolicy
from .config import Mode, TransportConfig, build_ssl_context
from .console import ConsoleLogHandler, ConsoleUI
from .errors import ConnectError, ProtocolError, WsConsoleError
from .peer import PeerHandle
from .relay import MessageRelay
from .websocket import AsyncWebSocket

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    PEER_ACTIVE = "peer_active"
    CLOSING = "closing"
    TERMINATED = "terminated"


class ConnectionOrchestrator:
    """
    Drive one interactive session in client or server mode.

    ``run`` returns the process exit code once the session ends. Every
    ending goes through ``terminate``; the peer, the listener and the
    terminal are released in ``run`` before it returns.

    Args:
        config: Validated transport configuration
        console: Console to drive (default: a ConsoleUI on stdin/stdout)
    """

    def __init__(self, config: TransportConfig, console: ConsoleUI | None = None) -> None:
        self.config = config
        self.console = console or ConsoleUI()
        self.relay = MessageRelay(self.console)
        self.admission: AdmissionPolicy[asyncio.StreamWriter] = AdmissionPolicy()
        self.state = State.IDLE
        self.peer: PeerHandle | None = None
        self.server: asyncio.AbstractServer | None = None
        self.bound_port: int | None = None
        self._peer_failed = False
        self._done: asyncio.Future[int] | None = None
        self._start_task: asyncio.Task | None = None
        self.console.on_break(self._on_break)

    async def run(self) -> int:
        loop = asyncio.get_running_loop()
        self._done = loop.create_future()
        handler = ConsoleLogHandler(self.console)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root = logging.getLogger()

        with self.console.raw_mode():
            root.addHandler(handler)
            self.console.attach(loop)
            self._install_signal_handlers(loop)
            self.console.suspend()
            self._start_task = loop.create_task(self._start())
            try:
                return await self._done
            finally:
                if not self._start_task.done():
                    self._start_task.cancel()
                await self._shutdown(loop)
                root.removeHandler(handler)

    def terminate(self, exit_code: int) -> None:
        """Single exit path: the session ends with ``exit_code``."""
        if self.state in (State.CLOSING, State.TERMINATED):
            return
        logger.debug("terminating with exit code %d", exit_code)
        self.state = State.CLOSING
        if self._done is not None and not self._done.done():
            self._done.set_result(exit_code)

    async def _start(self) -> None:
        try:
            if self.config.mode is Mode.CLIENT:
                await self._connect()
            else:
                await self._listen()
        except WsConsoleError as exc:
            self.relay.error(str(exc))
            self.terminate(exc.exit_code)
        except Exception:
            logger.exception("unexpected failure while starting")
            self.terminate(1)

    async def _connect(self) -> None:
        config = self.config
        self.state = State.CONNECTING
        ssl_context = build_ssl_context(config)
        try:
            ws = await AsyncWebSocket.connect(
                host=config.host,
                port=config.port,
                resource=config.path,
                headers=config.request_headers(),
                tls=config.secure,
                timeout=config.timeout,
                ssl_context=ssl_context,
                version=config.protocol_version,
            )
        except (ProtocolError, asyncio.TimeoutError) as exc:
            raise ConnectError(f"Unable to connect to {config.url}: {exc}") from exc

        peer = PeerHandle(ws, name=config.url)
        self.peer = peer
        self.relay.attach(peer)
        peer.on_open(self._on_client_open)
        peer.on_error(self._on_client_error)
        peer.on_close(lambda code: self._on_client_close(peer, code))
        peer.start()

    def _on_client_open(self) -> None:
        self.state = State.PEER_ACTIVE
        self.relay.notice("connected (press CTRL+C to quit)")
        self.console.resume()

    def _on_client_error(self, exc: Exception) -> None:
        self._peer_failed = True

    def _on_client_close(self, peer: PeerHandle, code: int) -> None:
        self.relay.detach(peer)
        self.peer = None
        self.console.suspend()
        self.relay.notice(f"disconnected (code: {code})")
        self.terminate(1 if self._peer_failed else 0)

    async def _listen(self) -> None:
        config = self.config
        self.state = State.LISTENING
        ssl_context = build_ssl_context(config)
        try:
            self.server = await asyncio.start_server(
                self._on_incoming, host=config.host, port=config.port, ssl=ssl_context
            )
        except OSError as exc:
            raise ConnectError(
                f"Unable to listen on {config.host}:{config.port}: {exc.strerror or exc}"
            ) from exc
        sockets = self.server.sockets or ()
        self.bound_port = sockets[0].getsockname()[1] if sockets else config.port
        logger.info("bound %s:%s", config.host, self.bound_port)
        self.relay.notice(
            f"listening on port {self.bound_port} (press CTRL+C to quit)"
        )

    async def _on_incoming(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        address = writer.get_extra_info("peername")
        if self.state in (State.CLOSING, State.TERMINATED):
            writer.transport.abort()
            return
        if self.admission.on_incoming(writer) is Admission.REJECT:
            logger.debug("dropping connection from %s", address)
            writer.transport.abort()
            return

        try:
            ws = await AsyncWebSocket.accept(
                reader, writer, path=self.config.path, timeout=self.config.timeout
            )
        except (ProtocolError, OSError) as exc:
            logger.info("handshake from %s failed: %s", address, exc)
            self.admission.release(writer)
            return

        if ws.request_headers.get("origin"):
            logger.debug("client origin: %s", ws.request_headers["origin"])
        peer = PeerHandle(ws, name=f"{address}")
        self.peer = peer
        self.relay.attach(peer)
        peer.on_open(self._on_server_peer_open)
        peer.on_close(lambda code: self._on_server_peer_close(peer, writer, code))
        peer.start()
        await peer.wait_closed()

    def _on_server_peer_open(self) -> None:
        self.state = State.PEER_ACTIVE
        self.relay.notice("client connected")
        self.console.resume()

    def _on_server_peer_close(
        self, peer: PeerHandle, writer: asyncio.StreamWriter, code: int
    ) -> None:
        self.relay.detach(peer)
        self.admission.release(writer)
        if self.peer is peer:
            self.peer = None
        if self.state in (State.CLOSING, State.TERMINATED):
            return
        self.console.suspend()
        self.relay.notice(f"client disconnected (code: {code})")
        self.state = State.LISTENING

    def _on_break(self) -> None:
        self.terminate(0)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_break)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("cannot install handler for %s", sig)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                pass

    async def _shutdown(self, loop: asyncio.AbstractEventLoop) -> None:
        self.relay.cancel()
        peer = self.peer
        if peer is not None and not peer.closed:
            await peer.close()
        if self.server is not None:
            self.server.close()
        self._remove_signal_handlers(loop)
        self.console.close()
        self.state = State.TERMINATED
