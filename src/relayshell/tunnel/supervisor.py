"""
Tunnel supervisor.

Keeps one tunnel client alive for the lifetime of a flow. The relay link is
expected to drop (network blips, relay restarts), so every exit of a started
client is followed by a fresh client once the retry period has elapsed. Only
a client that cannot even be constructed stops the loop: that is a
configuration problem, retrying will not fix it.

Attempts are strictly sequential; a client is never reused across cycles.
"""

import asyncio
from typing import Callable

from relayshell.config import Config
from relayshell.exceptions import TunnelClientError, TunnelConfigError
from relayshell.models.enums import TunnelState
from relayshell.tunnel.client import (
    ChiselClient,
    TunnelClient,
    TunnelClientFactory,
    TunnelClientOptions,
)
from relayshell.tunnel.remote import TunnelRemote
from relayshell.utils.logger import get_logger

logger = get_logger(__name__)

StateCallback = Callable[[TunnelState, BaseException | None], None]


class TunnelSupervisor:
    """
    Supervises the tunnel client retry loop.

    Status is observable through ``state``, ``last_error``, ``attempts`` and
    the ``ready`` event, which is set while the current client reports an
    established relay connection.
    """

    def __init__(
        self,
        config: Config,
        remote: TunnelRemote,
        client_factory: TunnelClientFactory = ChiselClient,
        on_state_change: StateCallback | None = None,
    ):
        """
        Initialize the supervisor.

        Args:
            config: Session configuration (relay, proxy, auth, retry period).
            remote: Port mapping for this side of the tunnel.
            client_factory: Builds one tunnel client per attempt.
            on_state_change: Called with (state, error) on every transition.
        """
        self.config = config
        self.remote = remote
        self._client_factory = client_factory
        self._on_state_change = on_state_change

        self.state = TunnelState.IDLE
        self.last_error: BaseException | None = None
        self.attempts = 0
        self.ready = asyncio.Event()

        self._client: TunnelClient | None = None
        self._task: asyncio.Task | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> asyncio.Task:
        """Run the retry loop in the background and return its task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="tunnel-supervisor")
        return self._task

    async def stop(self) -> None:
        """Cancel the retry loop and wait for the active client to close."""
        if self._task and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)

    async def wait_ready(self, timeout: float) -> bool:
        """
        Wait until the tunnel reports connected.

        Returns early (False) if the retry loop ends first, e.g. because the
        client could not be constructed.

        Returns:
            True if ready, False on timeout or if the loop has ended.
        """
        ready_waiter = asyncio.create_task(self.ready.wait())
        waiters = [ready_waiter]
        if self._task is not None:
            waiters.append(self._task)
        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            ready_waiter.cancel()
            await asyncio.gather(ready_waiter, return_exceptions=True)
        return self.ready.is_set()

    def build_options(self) -> TunnelClientOptions:
        """Client options for one attempt."""
        return TunnelClientOptions(
            server=self.config.relay_server,
            remotes=[str(self.remote)],
            proxy=self.config.proxy,
            auth=self.config.auth,
            verbose=self.config.verbose,
            max_retry_count=1,
            binary=self.config.tunnel_binary,
        )

    # =========================================================================
    # Retry Loop
    # =========================================================================

    async def run(self) -> None:
        """Retry loop; returns on construction failure, raises on cancellation."""
        loop = asyncio.get_running_loop()
        logger.debug(f"Tunnel supervisor starting for remote {self.remote}")

        try:
            while True:
                cycle_started = loop.time()
                self._set_state(TunnelState.CONNECTING)

                try:
                    client = self._client_factory(self.build_options())
                except TunnelConfigError as e:
                    logger.error(f"New tunnel client: {e}")
                    self.last_error = e
                    self._set_state(TunnelState.FAILED, e)
                    return

                self._client = client
                self.attempts += 1
                await self._run_client(client)
                await client.close()
                self._client = None
                self._set_state(TunnelState.DISCONNECTED, self.last_error)

                # Fixed period measured from the start of the attempt, no backoff
                delay = self.config.retry_period - (loop.time() - cycle_started)
                if delay > 0:
                    await asyncio.sleep(delay)

        except asyncio.CancelledError:
            if self._client is not None:
                await self._client.close()
                self._client = None
            self._set_state(TunnelState.STOPPED)
            raise

        finally:
            self.ready.clear()
            logger.debug("Tunnel supervisor is stopping")

    async def _run_client(self, client: TunnelClient) -> None:
        """Start one client and wait for it to exit; errors are recorded, not raised."""
        watcher = asyncio.create_task(self._watch_connected(client))
        try:
            await client.start()
            await client.wait()
            self.last_error = None
            logger.debug("Tunnel client exited")
        except (TunnelClientError, OSError) as e:
            self.last_error = e
            logger.debug(f"Tunnel client run: {e}")
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            self.ready.clear()

    async def _watch_connected(self, client: TunnelClient) -> None:
        await client.connected.wait()
        self.ready.set()
        self._set_state(TunnelState.CONNECTED)

    def _set_state(self, state: TunnelState, error: BaseException | None = None) -> None:
        self.state = state
        logger.trace(f"Tunnel state -> {state.value}")
        if self._on_state_change:
            self._on_state_change(state, error)
