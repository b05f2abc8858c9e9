from __future__ import annotations

import asyncio
import base64
import hashlib
import os
import ssl
import struct
from collections.abc import Iterable

from .errors import ConnectError, ConnectionClosed, ProtocolError

GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

OP_CONTINUATION = 0x0
OP_TEXT = 0x1
OP_BINARY = 0x2
OP_CLOSE = 0x8
OP_PING = 0x9
OP_PONG = 0xA

SUPPORTED_VERSIONS = ("8", "13")
MAX_HEADER_BYTES = 64 * 1024


def accept_key(key: str) -> str:
    """Compute the Sec-WebSocket-Accept value for a client key."""
    digest = hashlib.sha1((key + GUID).encode()).digest()
    return base64.b64encode(digest).decode()


def parse_head(raw: bytes) -> tuple[str, dict[str, str]]:
    """Split an HTTP head into its start line and lower-cased header map."""
    text = raw.decode("latin-1")
    lines = text.split("\r\n")
    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise ProtocolError(f"Malformed header line: {line!r}")
        headers[name.strip().lower()] = value.strip()
    return lines[0], headers


async def _read_head(reader: asyncio.StreamReader, timeout: float) -> bytes:
    # readuntil leaves any bytes after the head (an early frame) in the buffer
    try:
        return await asyncio.wait_for(reader.readuntil(b"\r\n\r\n"), timeout=timeout)
    except asyncio.IncompleteReadError as exc:
        raise ProtocolError(
            f"Connection closed during handshake: {exc.partial!r}"
        ) from exc
    except asyncio.LimitOverrunError as exc:
        raise ProtocolError("Handshake headers too large") from exc


class AsyncWebSocket:
    """
    Async WebSocket endpoint (RFC6455) over asyncio streams.
    Works as either side of a connection: client sockets mask outgoing
    frames, server sockets do not. No extensions; no permessage-deflate.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        mask: bool = True,
    ):
        self.reader = reader
        self.writer = writer
        self.mask = mask
        self.request_headers: dict[str, str] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int,
        resource: str,
        headers: Iterable[tuple[str, str]],
        tls: bool = False,
        timeout: float = 10.0,
        ssl_context: ssl.SSLContext | None = None,
        version: int = 13,
    ) -> AsyncWebSocket:
        """Connect to a WebSocket server asynchronously."""
        if tls and ssl_context is None:
            ssl_context = ssl.create_default_context()

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    host=host,
                    port=port,
                    ssl=ssl_context if tls else None,
                    server_hostname=host if tls else None,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ConnectError(f"Timed out connecting to {host}:{port}") from exc
        except (OSError, ssl.SSLError) as exc:
            raise ConnectError(f"Unable to connect to {host}:{port}: {exc}") from exc

        key = base64.b64encode(os.urandom(16)).decode()
        host_header = host if port in (80, 443) else f"{host}:{port}"
        req_lines = [
            f"GET {resource} HTTP/1.1\r\n",
            f"Host: {host_header}\r\n",
            "Upgrade: websocket\r\n",
            "Connection: Upgrade\r\n",
            f"Sec-WebSocket-Key: {key}\r\n",
            f"Sec-WebSocket-Version: {version}\r\n",
        ]
        for name, value in headers:
            req_lines.append(f"{name}: {value}\r\n")
        req_lines.append("\r\n")

        writer.write("".join(req_lines).encode("ascii"))
        await writer.drain()

        try:
            resp = await _read_head(reader, timeout)
        except (ProtocolError, asyncio.TimeoutError):
            await _close_writer(writer)
            raise

        status_line, resp_headers = parse_head(resp)
        if status_line.split(" ")[1:2] != ["101"]:
            await _close_writer(writer)
            raise ProtocolError(f"WebSocket upgrade failed: {status_line!r}")

        if resp_headers.get("sec-websocket-accept") != accept_key(key):
            await _close_writer(writer)
            raise ProtocolError("WebSocket accept mismatch")

        return cls(reader, writer, mask=True)

    @classmethod
    async def accept(
        cls,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        path: str = "/",
        timeout: float = 10.0,
    ) -> AsyncWebSocket:
        """Answer the opening handshake of an inbound connection."""
        try:
            raw = await _read_head(reader, timeout)
        except asyncio.TimeoutError as exc:
            await _close_writer(writer)
            raise ProtocolError("Timed out waiting for upgrade request") from exc
        except ProtocolError:
            await _close_writer(writer)
            raise

        request_line, headers = parse_head(raw)
        parts = request_line.split(" ")
        if len(parts) != 3 or parts[0] != "GET":
            await _reject(writer, "400 Bad Request")
            raise ProtocolError(f"Unexpected request line: {request_line!r}")

        resource = parts[1].split("?", 1)[0]
        if resource != path:
            await _reject(writer, "404 Not Found")
            raise ProtocolError(f"No WebSocket endpoint at {resource!r}")

        key = headers.get("sec-websocket-key")
        if headers.get("upgrade", "").lower() != "websocket" or not key:
            await _reject(writer, "400 Bad Request")
            raise ProtocolError("Request is not a WebSocket upgrade")

        if headers.get("sec-websocket-version") not in SUPPORTED_VERSIONS:
            await _reject(
                writer, "426 Upgrade Required", [("Sec-WebSocket-Version", "13")]
            )
            raise ProtocolError(
                f"Unsupported WebSocket version: {headers.get('sec-websocket-version')!r}"
            )

        resp_lines = [
            "HTTP/1.1 101 Switching Protocols\r\n",
            "Upgrade: websocket\r\n",
            "Connection: Upgrade\r\n",
            f"Sec-WebSocket-Accept: {accept_key(key)}\r\n",
        ]
        subprotocols = headers.get("sec-websocket-protocol")
        if subprotocols:
            resp_lines.append(
                f"Sec-WebSocket-Protocol: {subprotocols.split(',')[0].strip()}\r\n"
            )
        resp_lines.append("\r\n")
        writer.write("".join(resp_lines).encode("ascii"))
        await writer.drain()

        ws = cls(reader, writer, mask=False)
        ws.request_headers = headers
        return ws

    async def send_text(self, text: str) -> None:
        """Send a text message."""
        await self._send_frame(OP_TEXT, text.encode("utf-8"))

    async def send_bytes(self, data: bytes) -> None:
        """Send a binary message."""
        await self._send_frame(OP_BINARY, data)

    async def recv(self) -> tuple[int, bytes]:
        """
        Receive a data message and return (opcode, payload).

        Pings are answered and fragmented messages reassembled. Raises
        ConnectionClosed once the peer closes or the stream ends.
        """
        if self._closed:
            raise ConnectionClosed(1006)

        message_opcode: int | None = None
        fragments = bytearray()
        while True:
            fin, opcode, payload = await self._recv_frame()

            if opcode == OP_PING:
                await self._send_frame(OP_PONG, payload)
                continue
            if opcode == OP_PONG:
                continue
            if opcode == OP_CLOSE:
                code, reason = 1005, ""
                if len(payload) >= 2:
                    code = struct.unpack("!H", payload[:2])[0]
                    reason = payload[2:].decode("utf-8", errors="replace")
                await self.close(code if len(payload) >= 2 else 1000)
                raise ConnectionClosed(code, reason)

            if opcode == OP_CONTINUATION:
                if message_opcode is None:
                    raise ProtocolError("Continuation frame without a message")
            elif opcode in (OP_TEXT, OP_BINARY):
                if message_opcode is not None:
                    raise ProtocolError("New message started before previous ended")
                message_opcode = opcode
            else:
                raise ProtocolError(f"Unknown opcode: {opcode:#x}")

            fragments.extend(payload)
            if fin:
                return message_opcode, bytes(fragments)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the WebSocket connection."""
        if self._closed:
            return
        try:
            await self._send_frame(
                OP_CLOSE, struct.pack("!H", code) + reason.encode("utf-8")
            )
        except Exception:
            pass
        self._closed = True
        await _close_writer(self.writer)

    def abort(self) -> None:
        """Drop the underlying stream without a closing handshake."""
        self._closed = True
        transport = getattr(self.writer, "transport", None)
        if transport is not None:
            transport.abort()
        else:
            self.writer.close()

    async def _send_frame(self, opcode: int, payload: bytes) -> None:
        """Send a WebSocket frame."""
        if self._closed:
            raise ConnectionClosed(1006)

        fin_opcode = 0x80 | opcode
        mask_bit = 0x80 if self.mask else 0x00
        length = len(payload)
        header = bytearray([fin_opcode])

        if length < 126:
            header.append(mask_bit | length)
        elif length < (1 << 16):
            header.append(mask_bit | 126)
            header.extend(struct.pack("!H", length))
        else:
            header.append(mask_bit | 127)
            header.extend(struct.pack("!Q", length))

        if self.mask:
            mask = os.urandom(4)
            header.extend(mask)
            payload = bytes(b ^ mask[i % 4] for i, b in enumerate(payload))

        self.writer.write(bytes(header) + payload)
        await self.writer.drain()

    async def _recv_frame(self) -> tuple[bool, int, bytes]:
        """Receive a single WebSocket frame."""
        header = await self._recv_exact(2)
        b1, b2 = header
        fin = (b1 & 0x80) != 0
        opcode = b1 & 0x0F
        masked = (b2 & 0x80) != 0
        length = b2 & 0x7F

        if length == 126:
            length = struct.unpack("!H", await self._recv_exact(2))[0]
        elif length == 127:
            length = struct.unpack("!Q", await self._recv_exact(8))[0]

        mask_key = await self._recv_exact(4) if masked else None
        payload = await self._recv_exact(length)

        if masked and mask_key:
            payload = bytes(b ^ mask_key[i % 4] for i, b in enumerate(payload))

        return fin, opcode, payload

    async def _recv_exact(self, n: int) -> bytes:
        """Read exactly n bytes."""
        buf = bytearray()
        while len(buf) < n:
            chunk = await self.reader.read(n - len(buf))
            if not chunk:
                self.abort()
                raise ConnectionClosed(1006)
            buf.extend(chunk)
        return bytes(buf)

    async def __aenter__(self) -> AsyncWebSocket:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except Exception:
        pass


async def _reject(
    writer: asyncio.StreamWriter,
    status: str,
    extra: Iterable[tuple[str, str]] = (),
) -> None:
    lines = [f"HTTP/1.1 {status}\r\n", "Connection: close\r\n", "Content-Length: 0\r\n"]
    for name, value in extra:
        lines.append(f"{name}: {value}\r\n")
    lines.append("\r\n")
    try:
        writer.write("".join(lines).encode("ascii"))
        await writer.drain()
    except Exception:
        pass
    await _close_writer(writer)
