"""
Talk to a `wsconsole --listen 8765` session from a script.
"""

import asyncio

from wsconsole import AsyncWebSocket


async def main() -> None:
    async with await AsyncWebSocket.connect(
        host="127.0.0.1",
        port=8765,
        resource="/",
        headers=[("Origin", "http://127.0.0.1")],
        timeout=10.0,
    ) as ws:
        await ws.send_text("hello from a script")

        # Whatever the operator types next comes back here
        opcode, payload = await ws.recv()
        print(f"Received: opcode={opcode}, payload={payload.decode()}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as exc:
        print(f"WebSocket error: {exc}")
