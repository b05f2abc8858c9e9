"""
Local echo server to try `wsconsole --connect ws://127.0.0.1:8765/` against.
"""

import asyncio

import click

from wsconsole import AsyncWebSocket, ConnectionClosed


async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    ws = await AsyncWebSocket.accept(reader, writer)
    await ws.send_text("welcome")
    try:
        while True:
            _, payload = await ws.recv()
            click.secho(f"echo: {payload!r}", fg="blue")
            await ws.send_text(payload.decode(errors="replace"))
    except ConnectionClosed as exc:
        click.secho(f"closed: {exc.code}", fg="yellow")


async def main() -> None:
    server = await asyncio.start_server(handle, "127.0.0.1", 8765)
    click.secho("echo server on ws://127.0.0.1:8765/", fg="green")
    async with server:
        await server.serve_forever()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
