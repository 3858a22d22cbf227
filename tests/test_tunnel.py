"""Tests for tunnel remotes, the chisel client wrapper and the supervisor."""

import asyncio
import stat

import pytest

from relayshell.config import Config
from relayshell.exceptions import TunnelClientError, TunnelConfigError
from relayshell.models.enums import TunnelState
from relayshell.tunnel import ChiselClient, TunnelClientOptions, TunnelRemote, TunnelSupervisor


# =============================================================================
# Fakes
# =============================================================================


class FakeClient:
    """Tunnel client whose behavior is scripted by the test."""

    def __init__(self, options, fail=False, connect=False):
        self.options = options
        self.fail = fail
        self.connect = connect
        self.connected = asyncio.Event()
        self.closed = False
        self._exited = asyncio.Event()

    async def start(self):
        if self.fail:
            raise TunnelClientError("relay unreachable")
        if self.connect:
            self.connected.set()

    async def wait(self):
        await self._exited.wait()

    async def close(self):
        self.closed = True
        self._exited.set()


class RecordingFactory:
    def __init__(self, **client_kwargs):
        self.client_kwargs = client_kwargs
        self.clients = []

    def __call__(self, options):
        client = FakeClient(options, **self.client_kwargs)
        self.clients.append(client)
        return client


def _config(retry_period=10.0, **kwargs):
    return Config(host_id="id", relay_server="relay:8080", retry_period=retry_period, **kwargs)


def _write_script(path, body):
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


# =============================================================================
# TunnelRemote
# =============================================================================


def test_remote_rendering():
    assert str(TunnelRemote(remote_port=40001, reversed=True)) == "R:40001"
    assert str(TunnelRemote(remote_port=40001, local_port=51234)) == "51234:40001"
    assert str(TunnelRemote(remote_port=22)) == "22"


# =============================================================================
# ChiselClient
# =============================================================================


def test_chisel_client_argv():
    options = TunnelClientOptions(
        server="relay:8080",
        remotes=["R:40001"],
        proxy="socks5://proxy:1080",
        auth="user:pass",
        binary="sh",
    )
    client = ChiselClient(options)
    argv = client.build_argv()

    assert argv[0] == client.binary_path
    assert argv[1:] == [
        "client",
        "--auth",
        "user:pass",
        "--proxy",
        "socks5://proxy:1080",
        "-v",
        "--max-retry-count",
        "1",
        "relay:8080",
        "R:40001",
    ]


def test_chisel_client_argv_without_optional_flags():
    options = TunnelClientOptions(server="relay:8080", remotes=["1:2"], verbose=False, binary="sh")
    argv = ChiselClient(options).build_argv()

    assert argv[1:] == ["client", "--max-retry-count", "1", "relay:8080", "1:2"]


@pytest.mark.parametrize(
    "options",
    [
        TunnelClientOptions(server="", remotes=["R:1"], binary="sh"),
        TunnelClientOptions(server="relay:8080", remotes=[], binary="sh"),
        TunnelClientOptions(server="relay:8080", remotes=["R:1"], binary="no-such-tunnel-binary"),
    ],
)
def test_chisel_client_rejects_bad_options(options):
    with pytest.raises(TunnelConfigError):
        ChiselClient(options)


def test_chisel_client_reports_connected_and_closes(tmp_path):
    binary = _write_script(tmp_path / "chisel", 'echo "client: Connected (Latency 1ms)"\nexec sleep 30\n')

    async def scenario():
        client = ChiselClient(TunnelClientOptions(server="relay:8080", remotes=["R:1"], binary=binary))
        await client.start()
        await asyncio.wait_for(client.connected.wait(), timeout=5)
        await client.close()
        assert not client.connected.is_set()
        await client.close()

    asyncio.run(scenario())


def test_chisel_client_survives_overlong_output_line(tmp_path):
    binary = _write_script(
        tmp_path / "chisel",
        "head -c 100000 /dev/zero | tr '\\0' x\necho\necho \"client: Connected\"\nexit 0\n",
    )

    async def scenario():
        client = ChiselClient(TunnelClientOptions(server="relay:8080", remotes=["R:1"], binary=binary))
        seen_connected = asyncio.create_task(client.connected.wait())
        await client.start()
        await asyncio.wait_for(client.wait(), timeout=5)
        await asyncio.wait_for(seen_connected, timeout=1)
        await client.close()

    asyncio.run(scenario())


def test_chisel_client_nonzero_exit_is_an_error(tmp_path):
    binary = _write_script(tmp_path / "chisel", "exit 3\n")

    async def scenario():
        client = ChiselClient(TunnelClientOptions(server="relay:8080", remotes=["R:1"], binary=binary))
        await client.start()
        with pytest.raises(TunnelClientError, match="status 3"):
            await client.wait()
        await client.close()

    asyncio.run(scenario())


def test_chisel_client_wait_before_start():
    client = ChiselClient(TunnelClientOptions(server="relay:8080", remotes=["R:1"], binary="sh"))

    with pytest.raises(TunnelClientError):
        asyncio.run(client.wait())


# =============================================================================
# TunnelSupervisor
# =============================================================================


def test_supervisor_builds_options_from_config():
    config = _config(proxy="http://proxy:3128", auth="u:p", tunnel_binary="/opt/chisel")
    supervisor = TunnelSupervisor(config, TunnelRemote(remote_port=40001, reversed=True))

    options = supervisor.build_options()

    assert options.server == "relay:8080"
    assert options.remotes == ["R:40001"]
    assert options.proxy == "http://proxy:3128"
    assert options.auth == "u:p"
    assert options.max_retry_count == 1
    assert options.verbose is True
    assert options.binary == "/opt/chisel"


def test_supervisor_paces_failed_attempts():
    factory = RecordingFactory(fail=True)

    async def scenario():
        supervisor = TunnelSupervisor(_config(retry_period=0.1), TunnelRemote(1), client_factory=factory)
        supervisor.start()
        await asyncio.sleep(0.35)
        await supervisor.stop()
        return supervisor

    supervisor = asyncio.run(scenario())

    # One attempt per retry period: roughly 4 in 0.35s, never a tight loop
    assert 2 <= supervisor.attempts <= 5
    assert len(factory.clients) == supervisor.attempts
    assert all(client.closed for client in factory.clients)
    assert isinstance(supervisor.last_error, TunnelClientError)
    assert supervisor.state == TunnelState.STOPPED


def test_supervisor_stops_promptly_during_retry_wait():
    factory = RecordingFactory(fail=True)

    async def scenario():
        supervisor = TunnelSupervisor(_config(retry_period=30.0), TunnelRemote(1), client_factory=factory)
        supervisor.start()
        await asyncio.sleep(0.05)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await supervisor.stop()
        return supervisor, loop.time() - started

    supervisor, elapsed = asyncio.run(scenario())

    assert elapsed < 1.0
    assert supervisor.attempts == 1
    assert supervisor.state == TunnelState.STOPPED


def test_supervisor_stop_closes_running_client():
    factory = RecordingFactory(connect=True)
    states = []

    async def scenario():
        supervisor = TunnelSupervisor(
            _config(),
            TunnelRemote(1),
            client_factory=factory,
            on_state_change=lambda state, error: states.append(state),
        )
        supervisor.start()
        assert await supervisor.wait_ready(timeout=1.0)
        assert supervisor.state == TunnelState.CONNECTED
        await supervisor.stop()
        return supervisor

    supervisor = asyncio.run(scenario())

    assert factory.clients[0].closed
    assert not supervisor.ready.is_set()
    assert states[:2] == [TunnelState.CONNECTING, TunnelState.CONNECTED]
    assert states[-1] == TunnelState.STOPPED


def test_supervisor_construction_failure_is_terminal():
    calls = []

    def factory(options):
        calls.append(options)
        raise TunnelConfigError("tunnel client binary not found: chisel")

    async def scenario():
        supervisor = TunnelSupervisor(_config(retry_period=0.01), TunnelRemote(1), client_factory=factory)
        task = supervisor.start()
        ready = await supervisor.wait_ready(timeout=5.0)
        await task
        return supervisor, ready

    supervisor, ready = asyncio.run(scenario())

    assert ready is False
    assert len(calls) == 1
    assert supervisor.attempts == 0
    assert supervisor.state == TunnelState.FAILED
    assert isinstance(supervisor.last_error, TunnelConfigError)


def test_supervisor_wait_ready_times_out():
    factory = RecordingFactory()

    async def scenario():
        supervisor = TunnelSupervisor(_config(), TunnelRemote(1), client_factory=factory)
        supervisor.start()
        try:
            return await supervisor.wait_ready(timeout=0.05)
        finally:
            await supervisor.stop()

    assert asyncio.run(scenario()) is False
