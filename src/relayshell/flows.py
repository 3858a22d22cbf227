"""
Host and connect flows.

Both flows start the same way: resolve the host id, derive the tunnel port
from it and start the tunnel supervisor. The host then serves SSH sessions
behind a reverse mapping; the connect side forwards a free local port to the
derived port and dials it.
"""

import asyncio
import signal

import asyncssh

from relayshell.config import Config
from relayshell.exceptions import (
    InvalidHostIDError,
    PromptError,
    StageError,
    is_end_of_stream,
)
from relayshell.models.enums import TunnelState
from relayshell.ssh.client import open_connection, run_sftp_session, run_terminal_session
from relayshell.ssh.server import SessionServer
from relayshell.tunnel.client import ChiselClient, TunnelClientFactory
from relayshell.tunnel.remote import TunnelRemote
from relayshell.tunnel.supervisor import TunnelSupervisor
from relayshell.utils.endpoint import derive_port, get_free_port, resolve_host_id
from relayshell.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


def install_shutdown_signals(
    stop_event: asyncio.Event,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> None:
    """Set ``stop_event`` when any of ``signals`` arrives."""
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.add_signal_handler(sig, stop_event.set)


def _derive_tunnel_port(config: Config) -> int:
    try:
        host_id = resolve_host_id(config.host_id)
    except InvalidHostIDError as e:
        raise StageError("get host id", e) from e
    return derive_port(host_id)


# =============================================================================
# Host
# =============================================================================


async def run_host(
    config: Config,
    stop_event: asyncio.Event | None = None,
    client_factory: TunnelClientFactory = ChiselClient,
) -> None:
    """
    Expose an SSH session server through a reverse tunnel until stopped.

    Raises:
        StageError: Host id invalid or the SSH listener could not start.
    """
    port = _derive_tunnel_port(config)
    logger.debug(f"Starting on port {port}")

    if stop_event is None:
        stop_event = asyncio.Event()
        install_shutdown_signals(stop_event)

    supervisor = TunnelSupervisor(
        config,
        TunnelRemote(remote_port=port, reversed=True),
        client_factory=client_factory,
    )
    supervisor.start()

    server = SessionServer(port, enable_sftp=config.enable_sftp)
    try:
        await server.serve(stop_event)
    except OSError as e:
        raise StageError("start ssh server", e) from e
    finally:
        await supervisor.stop()


# =============================================================================
# Connect
# =============================================================================


async def run_connect(
    config: Config,
    stop_event: asyncio.Event | None = None,
    client_factory: TunnelClientFactory = ChiselClient,
) -> int:
    """
    Dial the host through the tunnel and run a terminal or SFTP session.

    Returns:
        Exit status of the remote shell (0 for SFTP sessions).

    Raises:
        StageError: A fatal stage failed; the stage name prefixes the message.
    """
    remote_port = _derive_tunnel_port(config)

    try:
        local_port = get_free_port()
    except OSError as e:
        raise StageError("get local port", e) from e

    if stop_event is None:
        stop_event = asyncio.Event()
        # SIGINT is left alone: the terminal is raw or the prompt owns Ctrl+C
        install_shutdown_signals(stop_event, (signal.SIGTERM,))

    supervisor = TunnelSupervisor(
        config,
        TunnelRemote(remote_port=remote_port, local_port=local_port),
        client_factory=client_factory,
    )
    supervisor.start()
    stop_watcher = asyncio.create_task(_stop_on(stop_event, supervisor))

    try:
        if not await supervisor.wait_ready(config.retry_period):
            if supervisor.state == TunnelState.FAILED:
                raise StageError("start tunnel", supervisor.last_error)
            logger.warning("Tunnel did not report ready, dialing anyway")

        try:
            conn = await open_connection(local_port, timeout=config.retry_period)
        except (OSError, asyncio.TimeoutError, asyncssh.Error) as e:
            raise StageError("ssh connect", e) from e

        async with conn:
            try:
                if config.enable_sftp:
                    await run_sftp_session(conn)
                    return 0
                return await run_terminal_session(conn)
            except (asyncssh.Error, OSError, PromptError) as e:
                if is_end_of_stream(e):
                    logger.debug(f"Session closed: {e!r}")
                    return 0
                logger.debug(f"Session failed:\n{format_traceback(e)}")
                raise StageError("start session", e) from e
    finally:
        stop_watcher.cancel()
        await asyncio.gather(stop_watcher, return_exceptions=True)
        await supervisor.stop()


async def _stop_on(stop_event: asyncio.Event, supervisor: TunnelSupervisor) -> None:
    await stop_event.wait()
    await supervisor.stop()
