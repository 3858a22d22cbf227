"""
Tunnel client backed by the chisel binary.

The relay wire protocol is not implemented here. A chisel client subprocess
carries the tunnel; this module starts it, relays its output into the log,
watches for the "Connected" notice and reports how it exited.
"""

import asyncio
import shutil
from dataclasses import dataclass, field
from typing import Callable, Protocol

from relayshell.config import DEFAULT_TUNNEL_BINARY
from relayshell.exceptions import TunnelClientError, TunnelConfigError
from relayshell.utils.logger import get_logger

logger = get_logger(__name__)

CONNECTED_MARKER = "Connected"
DISCONNECTED_MARKER = "Disconnected"

# Seconds to wait after SIGTERM before killing the client
CLOSE_GRACE_SECONDS = 3.0


# =============================================================================
# Options & Interface
# =============================================================================


@dataclass
class TunnelClientOptions:
    """Everything needed to build one tunnel client."""

    server: str
    remotes: list[str] = field(default_factory=list)
    proxy: str | None = None
    auth: str | None = None
    verbose: bool = True
    max_retry_count: int = 1
    binary: str = DEFAULT_TUNNEL_BINARY


class TunnelClient(Protocol):
    """Capability the supervisor drives; one instance per connection attempt."""

    connected: asyncio.Event

    async def start(self) -> None: ...

    async def wait(self) -> None: ...

    async def close(self) -> None: ...


TunnelClientFactory = Callable[[TunnelClientOptions], TunnelClient]


# =============================================================================
# chisel Subprocess Client
# =============================================================================


class ChiselClient:
    """Runs ``chisel client`` for a single connection attempt."""

    def __init__(self, options: TunnelClientOptions):
        """
        Validate options and locate the binary.

        Raises:
            TunnelConfigError: Missing server or remotes, or binary not found.
        """
        if not options.server:
            raise TunnelConfigError("relay server address is required")
        if not options.remotes:
            raise TunnelConfigError("at least one tunnel remote is required")

        binary_path = shutil.which(options.binary)
        if not binary_path:
            raise TunnelConfigError(f"tunnel client binary not found: {options.binary}")

        self.options = options
        self.binary_path = binary_path
        self.connected = asyncio.Event()
        self._process: asyncio.subprocess.Process | None = None
        self._output_task: asyncio.Task | None = None

    def build_argv(self) -> list[str]:
        """Command line for the chisel client."""
        argv = [self.binary_path, "client"]
        if self.options.auth:
            argv.extend(["--auth", self.options.auth])
        if self.options.proxy:
            argv.extend(["--proxy", self.options.proxy])
        if self.options.verbose:
            argv.append("-v")
        argv.extend(["--max-retry-count", str(self.options.max_retry_count)])
        argv.append(self.options.server)
        argv.extend(self.options.remotes)
        return argv

    async def start(self) -> None:
        """
        Spawn the client subprocess.

        Raises:
            TunnelClientError: The subprocess could not be spawned.
        """
        logger.debug(
            f"Starting tunnel client: server={self.options.server} "
            f"proxy={self.options.proxy} remotes={self.options.remotes} "
            f"auth={'set' if self.options.auth else 'none'}"
        )
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.build_argv(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise TunnelClientError(f"start tunnel client: {e}") from e

        self._output_task = asyncio.create_task(self._pump_output())

    async def _pump_output(self) -> None:
        """Forward client output to the log and track connection notices."""
        stream = self._process.stdout
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                # Line longer than the stream limit; the reader has dropped it
                logger.debug("[chisel] output line too long, skipped")
                continue
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            logger.debug(f"[chisel] {text}")
            if DISCONNECTED_MARKER in text:
                self.connected.clear()
            elif CONNECTED_MARKER in text:
                self.connected.set()

    async def wait(self) -> None:
        """
        Wait for the client to exit.

        Raises:
            TunnelClientError: Not started, or exited with a non-zero status.
        """
        if self._process is None:
            raise TunnelClientError("tunnel client not started")

        returncode = await self._process.wait()
        if self._output_task:
            await self._output_task
        self.connected.clear()

        if returncode != 0:
            raise TunnelClientError(f"tunnel client exited with status {returncode}")

    async def close(self) -> None:
        """Terminate the client if it is still running. Safe to call twice."""
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=CLOSE_GRACE_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Tunnel client ignored SIGTERM, killing it")
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass

        if self._output_task and not self._output_task.done():
            self._output_task.cancel()
            await asyncio.gather(self._output_task, return_exceptions=True)

        self.connected.clear()
