"""Connect command: open a shell or SFTP session on a remote host."""

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
from relayshell.flows import run_connect
from relayshell.models.enums import LogLevel
from relayshell.utils.logger import configure_logging

app = typer.Typer(help="Connect to a host through the relay")


@app.callback(invoke_without_command=True)
def connect(
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
    Connect to a host by its id.

    Opens a raw terminal session by default; with --sftp an interactive
    SFTP prompt instead. The exit status is the remote shell's.
    """
    configure_logging(log_level)
    config = build_config(srv, auth, proxy, host_id, retry, sftp, tunnel_bin)

    try:
        status = asyncio.run(run_connect(config))
    except RelayShellError as e:
        print_error(f"connect: {e}")
        raise typer.Exit(1)

    raise typer.Exit(status)
