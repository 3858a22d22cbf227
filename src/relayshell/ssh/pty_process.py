"""
Interactive shells attached to pseudo-terminals.

The host side never runs the user's shell directly. It re-executes relayshell
with the hidden ``sh`` subcommand under a fresh pty, and that subcommand
replaces itself with the login shell. Environment and terminal type are
passed to the spawn explicitly.
"""

import asyncio
import fcntl
import os
import pty
import pwd
import struct
import sys
import termios
from typing import NamedTuple

from relayshell.ssh.bind_connection import read_fd, write_fd
from relayshell.utils.logger import get_logger

logger = get_logger(__name__)


class TermSize(NamedTuple):
    """Terminal size in character cells."""

    cols: int
    rows: int


def set_winsize(fd: int, size: TermSize) -> None:
    """Apply a window size to a terminal file descriptor."""
    winsize = struct.pack("HHHH", size.rows, size.cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def default_shell_argv() -> list[str]:
    """Re-exec argv for the hidden ``sh`` subcommand."""
    return [sys.executable, "-m", "relayshell", "sh"]


def shell_environment(term: str) -> dict[str, str]:
    """
    Environment for the spawned shell.

    Inherits this process's environment, puts the directory of the running
    entry point first on PATH so relayshell stays reachable inside the
    session, and sets TERM from the pty request.
    """
    env = dict(os.environ)
    entry_dir = os.path.dirname(os.path.abspath(sys.argv[0]))
    env["PATH"] = os.pathsep.join(p for p in (entry_dir, env.get("PATH", "")) if p)
    env["TERM"] = term
    return env


def _make_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the pty slave
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtyProcess:
    """A subprocess whose stdio is the slave side of a pty we hold the master of."""

    def __init__(self, process: asyncio.subprocess.Process, master_fd: int):
        self.process = process
        self.master_fd = master_fd
        self._closed = False

    @property
    def pid(self) -> int:
        return self.process.pid

    async def read(self) -> bytes:
        """Read terminal output; empty bytes once the slave side is closed."""
        return await read_fd(self.master_fd)

    def write(self, data: bytes) -> None:
        """Write terminal input."""
        write_fd(self.master_fd, data)

    def resize(self, size: TermSize) -> None:
        """Propagate a window size change to the pty."""
        set_winsize(self.master_fd, size)

    async def wait(self) -> int:
        """Wait for the process and return its exit code."""
        return await self.process.wait()

    def close(self) -> None:
        """Close the pty master. Safe to call twice."""
        if not self._closed:
            self._closed = True
            os.close(self.master_fd)


async def spawn_interactive_shell(
    size: TermSize,
    term: str,
    argv: list[str] | None = None,
) -> PtyProcess:
    """
    Start an interactive shell attached to a new pty.

    Args:
        size: Initial window size.
        term: Terminal type for TERM.
        argv: Command to run (default: re-exec with the ``sh`` subcommand).

    Returns:
        PtyProcess owning the pty master.

    Raises:
        OSError: pty allocation or process spawn failed.
    """
    argv = argv or default_shell_argv()
    master_fd, slave_fd = pty.openpty()
    try:
        set_winsize(master_fd, size)
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
            env=shell_environment(term),
            start_new_session=True,
            preexec_fn=_make_controlling_tty,
        )
    except BaseException:
        os.close(master_fd)
        raise
    finally:
        os.close(slave_fd)

    logger.debug(f"Spawned shell pid={process.pid} size={size.cols}x{size.rows}")
    return PtyProcess(process, master_fd)


def login_shell() -> str:
    """The user's shell: $SHELL, then the passwd entry, then /bin/sh."""
    shell = os.environ.get("SHELL")
    if shell:
        return shell
    try:
        shell = pwd.getpwuid(os.getuid()).pw_shell
    except KeyError:
        shell = ""
    return shell or "/bin/sh"


def exec_login_shell() -> None:
    """Replace the current process with the user's login shell."""
    shell = login_shell()
    # A leading "-" in argv[0] asks the shell to behave as a login shell
    os.execv(shell, ["-" + os.path.basename(shell)])
