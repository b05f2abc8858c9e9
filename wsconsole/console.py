"""
Interactive line editor for a raw-mode terminal.

The console owns the edit buffer and the terminal. Keystrokes arrive through
``feed`` (wired to the event loop's stdin reader by ``attach``); completed
lines and break requests are handed to registered callbacks. Output that
arrives asynchronously is written with ``print``, which redraws the prompt
and the unfinished input afterwards.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import sys
import termios
import tty
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import contextmanager
from typing import TextIO

import click

logger = logging.getLogger(__name__)

CTRL_C = "\x03"
CTRL_D = "\x04"
CTRL_U = "\x15"
BACKSPACE = ("\x7f", "\x08")
SUBMIT = ("\r", "\n")
ESCAPE = "\x1b"

CLEAR_LINE = "\r\x1b[2K"

LineCallback = Callable[[str], None]
BreakCallback = Callable[[], None]


class ConsoleUI:
    """
    Raw-mode line editor that emits completed lines as events.

    Args:
        prompt: Text drawn in front of the edit buffer
        stream: Output stream (default: sys.stdout)
        stdin: Input stream whose file descriptor is read in ``attach``
        color: True/False to force ANSI colors on/off, None to auto-detect
    """

    def __init__(
        self,
        prompt: str = "> ",
        stream: TextIO | None = None,
        stdin: TextIO | None = None,
        color: bool | None = None,
    ) -> None:
        self.prompt = prompt
        self.stream = stream or sys.stdout
        self.stdin = stdin or sys.stdin
        self.color = color
        self.suspended = False
        self._buffer: list[str] = []
        self._line_callbacks: list[LineCallback] = []
        self._break_callbacks: list[BreakCallback] = []
        self._queues: list[asyncio.Queue[str | None]] = []
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._in_escape = False
        self._escape_seq = ""
        self._loop: asyncio.AbstractEventLoop | None = None
        self._fd: int | None = None

    @property
    def edit_buffer(self) -> str:
        return "".join(self._buffer)

    def on_line(self, callback: LineCallback) -> None:
        self._line_callbacks.append(callback)

    def on_break(self, callback: BreakCallback) -> None:
        self._break_callbacks.append(callback)

    def feed(self, data: str) -> None:
        """Process typed characters in order."""
        for char in data:
            if self._in_escape:
                self._consume_escape(char)
            elif char == ESCAPE:
                self._in_escape = True
                self._escape_seq = ""
            elif char == CTRL_C:
                self._emit_break()
            elif char == CTRL_D:
                if not self._buffer:
                    self._emit_break()
            elif char in SUBMIT:
                self._submit()
            elif self.suspended:
                continue
            elif char in BACKSPACE:
                if self._buffer:
                    self._buffer.pop()
                    self._write("\b \b")
            elif char == CTRL_U:
                self._buffer.clear()
                self.render_prompt()
            elif char.isprintable():
                self._buffer.append(char)
                self._write(char)

    def print(self, message: str, color: str | None = None) -> None:
        """
        Write a full line above the prompt.

        The current input line is cleared, the message written, then the
        prompt and the unfinished edit buffer are drawn again.
        """
        text = click.style(message, fg=color) if color and self.color is not False else message
        self._clear_line()
        self._write(f"{text}\r\n")
        self.render_prompt()

    def render_prompt(self) -> None:
        if self.suspended:
            return
        self._clear_line()
        self._write(self.prompt + self.edit_buffer)

    def suspend(self) -> None:
        """Stop accepting keystrokes into the buffer and hide the prompt."""
        self.suspended = True
        self._buffer.clear()
        self._clear_line()

    def resume(self) -> None:
        self.suspended = False
        self.render_prompt()

    async def lines(self) -> AsyncIterator[str]:
        """Yield submitted lines until the console is closed."""
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                line = await queue.get()
                if line is None:
                    return
                yield line
        finally:
            self._queues.remove(queue)

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start reading keystrokes from stdin on the event loop."""
        fd = self._fileno()
        if fd is None:
            logger.debug("stdin has no file descriptor; console input disabled")
            return
        self._loop = loop or asyncio.get_running_loop()
        self._fd = fd
        self._loop.add_reader(fd, self._on_readable)

    def detach(self) -> None:
        if self._loop is not None and self._fd is not None:
            self._loop.remove_reader(self._fd)
        self._loop = None
        self._fd = None

    def close(self) -> None:
        """Detach from stdin and end every ``lines()`` iterator."""
        self.detach()
        for queue in list(self._queues):
            queue.put_nowait(None)
        self._clear_line()

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        """Put the terminal in raw mode, restoring it however the block exits."""
        fd = self._fileno()
        if fd is None or not os.isatty(fd):
            yield
            return
        saved = termios.tcgetattr(fd)
        try:
            tty.setraw(fd)
            yield
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)

    def _on_readable(self) -> None:
        try:
            data = os.read(self._fd, 1024)
        except OSError as exc:
            logger.debug("stdin read failed: %s", exc)
            data = b""
        if not data:
            logger.debug("stdin reached end of file")
            self.detach()
            return
        self.feed(self._decoder.decode(data))

    def _consume_escape(self, char: str) -> None:
        # ESC [ params final, ESC O final, or a lone two-character sequence
        self._escape_seq += char
        if len(self._escape_seq) == 1 and char not in "[O":
            self._in_escape = False
        elif len(self._escape_seq) > 1 and "@" <= char <= "~":
            self._in_escape = False

    def _submit(self) -> None:
        if not self._buffer:
            return
        line = self.edit_buffer
        self._buffer.clear()
        self._write("\r\n")
        for callback in list(self._line_callbacks):
            callback(line)
        for queue in self._queues:
            queue.put_nowait(line)
        self.render_prompt()

    def _emit_break(self) -> None:
        for callback in list(self._break_callbacks):
            callback()

    def _fileno(self) -> int | None:
        try:
            return self.stdin.fileno()
        except (AttributeError, OSError, ValueError):
            return None

    def _write(self, text: str) -> None:
        click.echo(text, file=self.stream, nl=False, color=self.color)

    def _clear_line(self) -> None:
        # control sequences bypass click.echo, which strips ANSI when color is off
        self.stream.write(CLEAR_LINE)
        self.stream.flush()


class ConsoleLogHandler(logging.Handler):
    """Route log records through ``ConsoleUI.print`` so they keep the prompt intact."""

    COLORS = {
        logging.DEBUG: "bright_black",
        logging.INFO: None,
        logging.WARNING: "yellow",
        logging.ERROR: "red",
        logging.CRITICAL: "red",
    }

    def __init__(self, console: ConsoleUI, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.console = console

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.console.print(self.format(record), self.COLORS.get(record.levelno))
        except Exception:
            self.handleError(record)
