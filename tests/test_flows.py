"""Tests for the host and connect flows, with the tunnel client faked out."""

import asyncio

import pytest

from relayshell.config import Config
from relayshell.exceptions import StageError, TunnelConfigError
from relayshell.flows import run_connect, run_host
from relayshell.utils.endpoint import derive_port

HOST_UUID = "0b8e6a4c-3f1d-4e2a-9c57-2d1f6e8a9b30"


class CapturingFactory:
    """Records the options of the first attempt, then refuses to build a client."""

    def __init__(self):
        self.options = []

    def __call__(self, options):
        self.options.append(options)
        raise TunnelConfigError("no tunnel in tests")


def _config(host_id=HOST_UUID, **kwargs):
    return Config(host_id=host_id, relay_server="relay:8080", retry_period=5.0, **kwargs)


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    # Host ids are tried as file paths first
    monkeypatch.chdir(tmp_path)


def test_connect_rejects_invalid_host_id():
    with pytest.raises(StageError) as excinfo:
        asyncio.run(run_connect(_config(host_id="not-a-uuid"), stop_event=asyncio.Event()))

    assert excinfo.value.stage == "get host id"
    assert str(excinfo.value) == "get host id: host id should be either uuid or path to file with it"


def test_host_rejects_invalid_host_id():
    with pytest.raises(StageError) as excinfo:
        asyncio.run(run_host(_config(host_id=""), stop_event=asyncio.Event()))

    assert excinfo.value.stage == "get host id"


def test_connect_fails_fast_when_tunnel_cannot_be_built():
    factory = CapturingFactory()

    async def scenario():
        return await asyncio.wait_for(
            run_connect(_config(), stop_event=asyncio.Event(), client_factory=factory),
            timeout=2.0,
        )

    with pytest.raises(StageError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.stage == "start tunnel"
    assert isinstance(excinfo.value.error, TunnelConfigError)
    assert len(factory.options) == 1


def test_host_and_connect_map_the_same_port():
    host_factory = CapturingFactory()
    connect_factory = CapturingFactory()
    port = derive_port(HOST_UUID)

    async def host_scenario():
        stop = asyncio.Event()
        stop.set()
        await run_host(_config(), stop_event=stop, client_factory=host_factory)

    asyncio.run(host_scenario())
    with pytest.raises(StageError):
        asyncio.run(run_connect(_config(), stop_event=asyncio.Event(), client_factory=connect_factory))

    (host_options,) = host_factory.options
    (connect_options,) = connect_factory.options
    assert host_options.remotes == [f"R:{port}"]

    local_port, remote_port = connect_options.remotes[0].split(":")
    assert int(remote_port) == port
    assert int(local_port) > 0
    assert host_options.server == connect_options.server == "relay:8080"
