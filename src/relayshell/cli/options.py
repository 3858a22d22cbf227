"""
Options shared by the ``host`` and ``connect`` commands.

Every option can also be given through a ``RELAYSHELL_*`` environment
variable.
"""

from typing import Annotated

import typer

from relayshell.config import DEFAULT_TUNNEL_BINARY, Config
from relayshell.models.enums import LogLevel
from relayshell.utils.cli import parse_duration

SrvOption = Annotated[
    str,
    typer.Option("--srv", help="Relay server address", envvar="RELAYSHELL_SRV"),
]
AuthOption = Annotated[
    str | None,
    typer.Option("--auth", help="Relay credentials (user:pass)", envvar="RELAYSHELL_AUTH"),
]
ProxyOption = Annotated[
    str | None,
    typer.Option("--proxy", help="HTTP or SOCKS proxy for the relay", envvar="RELAYSHELL_PROXY"),
]
HostIDOption = Annotated[
    str,
    typer.Option(
        "--host-id",
        "--id",
        help="Host UUID or path to a file holding the host id",
        envvar="RELAYSHELL_HOST_ID",
    ),
]
RetryOption = Annotated[
    str,
    typer.Option(
        "--retry",
        help="Tunnel retry period and SSH dial timeout (e.g. 10s, 1m30s)",
        envvar="RELAYSHELL_RETRY",
    ),
]
SftpOption = Annotated[
    bool,
    typer.Option("--sftp", help="Enable SFTP instead of a terminal", envvar="RELAYSHELL_SFTP"),
]
TunnelBinOption = Annotated[
    str,
    typer.Option("--tunnel-bin", help="chisel executable", envvar="RELAYSHELL_TUNNEL_BIN"),
]
LogLevelOption = Annotated[
    LogLevel,
    typer.Option(
        "--log-level",
        help="Log verbosity",
        case_sensitive=False,
        envvar="RELAYSHELL_LOG_LEVEL",
    ),
]


def build_config(
    srv: str,
    auth: str | None,
    proxy: str | None,
    host_id: str,
    retry: str,
    sftp: bool,
    tunnel_bin: str = DEFAULT_TUNNEL_BINARY,
) -> Config:
    """
    Turn raw option values into a Config.

    Raises:
        typer.BadParameter: The retry period is not a valid duration.
    """
    try:
        retry_period = parse_duration(retry)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--retry")

    return Config(
        host_id=host_id,
        relay_server=srv,
        proxy=proxy or None,
        auth=auth or None,
        retry_period=retry_period,
        enable_sftp=sftp,
        tunnel_binary=tunnel_bin,
    )
