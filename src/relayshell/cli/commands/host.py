"""Host command: expose this machine's shell through the relay."""

import asyncio

import typer

from relayshell.cli.options import (
    AuthOption,
    HostIDOption,
    LogLevelOption,
    ProxyOption,
    RetryOption,
    SftpOption,
    SrvOption,
    TunnelBinOption,
    build_config,
)
from relayshell.cli.output import print_error
from relayshell.config import DEFAULT_TUNNEL_BINARY
from relayshell.exceptions import RelayShellError
from relayshell.flows import run_host
from relayshell.models.enums import LogLevel
from relayshell.utils.logger import configure_logging

app = typer.Typer(help="Serve shell sessions through the relay")


@app.callback(invoke_without_command=True)
def host(
    srv: SrvOption,
    auth: AuthOption = None,
    proxy: ProxyOption = None,
    host_id: HostIDOption = "",
    retry: RetryOption = "10s",
    sftp: SftpOption = False,
    tunnel_bin: TunnelBinOption = DEFAULT_TUNNEL_BINARY,
    log_level: LogLevelOption = LogLevel.INFO,
):
    """
    Serve interactive shell sessions to peers that know this host's id.

    Runs until interrupted with Ctrl+C or SIGTERM.
    """
    configure_logging(log_level)
    config = build_config(srv, auth, proxy, host_id, retry, sftp, tunnel_bin)

    try:
        asyncio.run(run_host(config))
    except RelayShellError as e:
        print_error(f"host: {e}")
        raise typer.Exit(1)
