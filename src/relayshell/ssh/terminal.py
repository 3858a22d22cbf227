"""
Local terminal handling for the connect side.

Raw mode for interactive sessions, cancellable stdin reads, window size
queries and line input for the SFTP prompt. POSIX only (termios/tty).
"""

import asyncio
import os
import signal
import sys
import termios
import tty
from typing import Callable

from relayshell.ssh.bind_connection import read_fd
from relayshell.ssh.pty_process import TermSize

# Used when the local terminal size cannot be determined
DEFAULT_TERM_SIZE = TermSize(cols=80, rows=80)


def get_terminal_size(fd: int | None = None) -> TermSize:
    """Size of the local terminal, or DEFAULT_TERM_SIZE if unavailable."""
    if fd is None:
        fd = sys.stdout.fileno()
    try:
        size = os.get_terminal_size(fd)
    except OSError:
        return DEFAULT_TERM_SIZE
    return TermSize(cols=size.columns, rows=size.lines)


class TerminalHandler:
    """
    Terminal handler for raw mode input/output.

    Raw mode sends all keystrokes directly without line buffering, so arrow
    keys, Ctrl+C and friends reach the remote shell.
    """

    def __init__(self, stdin_fd: int | None = None):
        """Initialize terminal handler, remembering which fd to control."""
        self.stdin_fd = sys.stdin.fileno() if stdin_fd is None else stdin_fd
        self._old_settings = None
        self._is_tty = os.isatty(self.stdin_fd)

    @property
    def is_raw(self) -> bool:
        return self._old_settings is not None

    def enter_raw_mode(self) -> None:
        """Save current settings and switch to raw mode."""
        if not self._is_tty or self._old_settings is not None:
            return
        self._old_settings = termios.tcgetattr(self.stdin_fd)
        tty.setraw(self.stdin_fd)

    def exit_raw_mode(self) -> None:
        """Restore original terminal settings."""
        if self._old_settings is None:
            return
        termios.tcsetattr(self.stdin_fd, termios.TCSADRAIN, self._old_settings)
        self._old_settings = None

    def __enter__(self):
        self.enter_raw_mode()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exit_raw_mode()


class ResizeWatcher:
    """Calls back with the new local terminal size on SIGWINCH."""

    def __init__(self, on_resize: Callable[[TermSize], None]):
        self.on_resize = on_resize
        self._installed = False

    def install(self) -> None:
        if not hasattr(signal, "SIGWINCH"):
            return
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGWINCH, self._handle)
        self._installed = True

    def remove(self) -> None:
        if self._installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGWINCH)
            self._installed = False

    def _handle(self) -> None:
        self.on_resize(get_terminal_size())


class LineReader:
    """
    Async line input from a file descriptor.

    Lines are read without blocking the event loop. In canonical tty mode the
    kernel hands over one edited line at a time; piped input may deliver
    several at once, so whole lines are buffered.
    """

    def __init__(self, fd: int | None = None, echo: Callable[[str], None] | None = None):
        self.fd = sys.stdin.fileno() if fd is None else fd
        self.echo = echo or _write_prompt
        self._buffer = b""
        self._eof = False

    async def __call__(self, prompt: str) -> str:
        """
        Show ``prompt`` and return the next line without its newline.

        Raises:
            EOFError: Input is exhausted.
        """
        self.echo(prompt)
        while b"\n" not in self._buffer and not self._eof:
            data = await read_fd(self.fd, 4096)
            if not data:
                self._eof = True
            self._buffer += data

        if not self._buffer:
            raise EOFError("end of input")

        line, _, rest = self._buffer.partition(b"\n")
        self._buffer = rest
        return line.decode("utf-8", errors="replace").rstrip("\r")


def _write_prompt(prompt: str) -> None:
    sys.stdout.write(prompt)
    sys.stdout.flush()
