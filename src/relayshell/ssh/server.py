"""
SSH session server for the host side.

Listens on the loopback port the reverse tunnel delivers traffic to. Each
session gets its own pty running the user's login shell; SFTP is available
as a subsystem when enabled.
"""

import asyncio

import asyncssh

from relayshell.config import LOOPBACK_HOST
from relayshell.sftp.server import HostSFTPServer
from relayshell.ssh.bind_connection import bind_fd_writer
from relayshell.ssh.pty_process import PtyProcess, TermSize, spawn_interactive_shell
from relayshell.utils.logger import get_logger

logger = get_logger(__name__)

NO_PTY_MESSAGE = b"No PTY requested.\n"

# Bound on how long a finished shell's remaining output may take to flush
OUTPUT_DRAIN_TIMEOUT = 1.0


class _OpenAccess(asyncssh.SSHServer):
    """No SSH-level authentication; access is gated by the relay."""

    def connection_made(self, conn: asyncssh.SSHServerConnection) -> None:
        logger.debug(f"SSH connection from {conn.get_extra_info('peername')}")

    def connection_lost(self, exc: Exception | None) -> None:
        if exc:
            logger.debug(f"SSH connection lost: {exc}")

    def begin_auth(self, username: str) -> bool:
        return False


def _exit_status(returncode: int) -> int:
    # Negative return codes mean "killed by signal N"
    return returncode if returncode >= 0 else 128 - returncode


class SessionServer:
    """Serves interactive pty sessions (and optionally SFTP) on loopback."""

    def __init__(
        self,
        port: int,
        enable_sftp: bool = False,
        host: str = LOOPBACK_HOST,
        shell_argv: list[str] | None = None,
    ):
        """
        Initialize the server.

        Args:
            port: Loopback port the tunnel maps inbound traffic to.
            enable_sftp: Register the SFTP subsystem.
            host: Address to bind.
            shell_argv: Override the shell command (default: re-exec ``sh``).
        """
        self.port = port
        self.enable_sftp = enable_sftp
        self.host = host
        self.shell_argv = shell_argv
        self._acceptor: asyncssh.SSHAcceptor | None = None

    async def serve(self, stop_event: asyncio.Event) -> None:
        """
        Accept sessions until ``stop_event`` is set.

        Raises:
            OSError: The listener could not be bound.
        """
        host_key = asyncssh.generate_private_key("ssh-ed25519")

        self._acceptor = await asyncssh.listen(
            self.host,
            self.port,
            server_factory=_OpenAccess,
            server_host_keys=[host_key],
            process_factory=self.handle_session,
            sftp_factory=HostSFTPServer if self.enable_sftp else None,
            encoding=None,
        )
        logger.info(
            f"SSH session server listening on {self.host}:{self.get_port()}"
            f"{' (sftp enabled)' if self.enable_sftp else ''}"
        )

        watcher = asyncio.create_task(self._close_on(stop_event))
        try:
            await self._acceptor.wait_closed()
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            logger.debug("SSH session server stopped")

    async def _close_on(self, stop_event: asyncio.Event) -> None:
        await stop_event.wait()
        self.close()

    def get_port(self) -> int:
        """Bound port once listening (resolves port 0), else the configured one."""
        if self._acceptor:
            return self._acceptor.get_port()
        return self.port

    def close(self) -> None:
        """Stop accepting new connections; open sessions drain on their own."""
        if self._acceptor:
            self._acceptor.close()

    # =========================================================================
    # Session Handling
    # =========================================================================

    async def handle_session(self, process: asyncssh.SSHServerProcess) -> None:
        """Run one interactive session; requires a pty request."""
        peer = process.get_extra_info("peername")
        log_prefix = f"[Session {peer}]"

        term = process.get_terminal_type()
        if term is None:
            process.stdout.write(NO_PTY_MESSAGE)
            process.exit(1)
            return

        width, height, _, _ = process.term_size
        size = TermSize(cols=width, rows=height)
        logger.debug(f"{log_prefix} Session started (term={term}, {width}x{height})")

        try:
            shell = await spawn_interactive_shell(size, term, self.shell_argv)
        except OSError as e:
            logger.warning(f"{log_prefix} pty start: {e}")
            process.exit(1)
            return

        returncode = await self._bridge(process, shell, log_prefix)
        logger.debug(f"{log_prefix} Session ended (exit {returncode})")
        process.exit(_exit_status(returncode))

    async def _bridge(
        self,
        process: asyncssh.SSHServerProcess,
        shell: PtyProcess,
        log_prefix: str,
    ) -> int:
        """Copy session <-> pty and apply resizes until the shell exits."""
        resizes: asyncio.Queue[TermSize] = asyncio.Queue()

        input_task = asyncio.create_task(pump_session_input(process.stdin, shell, resizes))
        output_task = asyncio.create_task(bind_fd_writer(shell.master_fd, process.stdout))
        resize_task = asyncio.create_task(apply_resizes(resizes, shell, log_prefix))

        try:
            returncode = await shell.wait()
            await asyncio.wait([output_task], timeout=OUTPUT_DRAIN_TIMEOUT)
        finally:
            for task in (input_task, output_task, resize_task):
                task.cancel()
            await asyncio.gather(input_task, output_task, resize_task, return_exceptions=True)
            shell.close()

        return returncode


async def pump_session_input(reader, shell: PtyProcess, resizes: asyncio.Queue) -> None:
    """
    Copy session input to the pty.

    asyncssh reports window changes as TerminalSizeChanged raised from the
    input stream; those are handed to the resize queue.
    """
    while True:
        try:
            data = await reader.read(1024)
        except asyncssh.TerminalSizeChanged as change:
            resizes.put_nowait(TermSize(cols=change.width, rows=change.height))
            continue
        except (asyncssh.BreakReceived, asyncssh.SignalReceived):
            continue
        except (OSError, asyncssh.Error):
            break

        if not data:
            break
        try:
            shell.write(data)
        except OSError:
            break


async def apply_resizes(resizes: asyncio.Queue, shell: PtyProcess, log_prefix: str = "") -> None:
    """Drain resize events into the pty."""
    while True:
        size = await resizes.get()
        try:
            shell.resize(size)
        except OSError as e:
            logger.warning(f"{log_prefix} resize pty: {e}")
