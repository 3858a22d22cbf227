"""
SSH session client for the connect side.

Dials the local end of the forward tunnel and runs either an interactive
terminal session or the SFTP shell over it.
"""

import asyncio
import sys

import asyncssh

from relayshell.config import DEFAULT_TERM_TYPE, LOOPBACK_HOST
from relayshell.sftp.shell import ReadLine, SftpShell
from relayshell.ssh.bind_connection import bind_fd_writer, bind_reader_fd
from relayshell.ssh.pty_process import TermSize
from relayshell.ssh.terminal import (
    LineReader,
    ResizeWatcher,
    TerminalHandler,
    get_terminal_size,
)
from relayshell.utils.logger import get_logger

logger = get_logger(__name__)

# RFC 4254 terminal mode opcodes
PTY_ECHO = 53
PTY_OP_ISPEED = 128
PTY_OP_OSPEED = 129

TERM_MODES = {
    PTY_ECHO: 0,
    PTY_OP_ISPEED: 14400,
    PTY_OP_OSPEED: 14400,
}

# Bound on how long remote output may take to flush after the shell exits
OUTPUT_DRAIN_TIMEOUT = 1.0


async def open_connection(
    port: int,
    timeout: float,
    host: str = LOOPBACK_HOST,
) -> asyncssh.SSHClientConnection:
    """
    Open an SSH connection to the forwarded tunnel port.

    Host keys are not verified: the host key is ephemeral and trust is
    anchored by the relay and its credential, not by SSH.

    Raises:
        asyncio.TimeoutError: The handshake did not finish within ``timeout``.
        OSError, asyncssh.Error: Connection or handshake failure.
    """
    return await asyncio.wait_for(
        asyncssh.connect(
            host,
            port,
            known_hosts=None,
            agent_path=None,
            encoding=None,
        ),
        timeout=timeout,
    )


async def run_terminal_session(
    conn: asyncssh.SSHClientConnection,
    terminal: TerminalHandler | None = None,
    stdout_fd: int | None = None,
    stderr_fd: int | None = None,
) -> int:
    """
    Run an interactive shell on the remote pty, bridged to the local terminal.

    The local terminal is in raw mode for the whole session and restored on
    every exit path. Output goes to this process's stdout and stderr unless
    other descriptors are given.

    Returns:
        Remote exit status.
    """
    terminal = terminal or TerminalHandler()
    if stdout_fd is None:
        stdout_fd = sys.stdout.fileno()
    if stderr_fd is None:
        stderr_fd = sys.stderr.fileno()
    size = get_terminal_size(stdout_fd)

    process = await conn.create_process(
        term_type=DEFAULT_TERM_TYPE,
        term_size=(size.cols, size.rows),
        term_modes=TERM_MODES,
        encoding=None,
    )

    def on_resize(new_size: TermSize) -> None:
        process.change_terminal_size(new_size.cols, new_size.rows)

    resize_watcher = ResizeWatcher(on_resize)

    with terminal:
        resize_watcher.install()
        stdout_task = asyncio.create_task(bind_reader_fd(process.stdout, stdout_fd))
        stderr_task = asyncio.create_task(bind_reader_fd(process.stderr, stderr_fd))
        stdin_task = asyncio.create_task(bind_fd_writer(terminal.stdin_fd, process.stdin))
        tasks = (stdout_task, stderr_task, stdin_task)

        try:
            completed = await process.wait()
            await asyncio.wait([stdout_task, stderr_task], timeout=OUTPUT_DRAIN_TIMEOUT)
        finally:
            resize_watcher.remove()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    exit_status = completed.exit_status
    if exit_status is None:
        # Remote side reported a signal or nothing at all
        exit_status = 1 if completed.exit_signal else 0
    logger.debug(f"Remote shell exited with status {exit_status}")
    return exit_status


async def run_sftp_session(
    conn: asyncssh.SSHClientConnection,
    read_line: ReadLine | None = None,
    shell_factory=SftpShell,
) -> None:
    """
    Open an SFTP client over the connection and run the interactive shell.

    Commands are read from stdin unless ``read_line`` is given.

    Raises:
        PromptError: The shell could not read its next command.
    """
    async with conn.start_sftp_client() as sftp:
        shell = await shell_factory.create(sftp, read_line=read_line or LineReader())
        await shell.run()
