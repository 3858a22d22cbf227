"""
Session configuration for relayshell.

A Config is built once by the CLI and handed, unchanged, to the host or the
connect flow.

Usage:
    from relayshell.config import Config

    config = Config(host_id="/etc/relayshell/id", relay_server="relay:8080")
"""

from dataclasses import dataclass


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_RETRY_PERIOD: float = 10.0
DEFAULT_TUNNEL_BINARY: str = "chisel"

# Both the tunnel endpoint and the SSH listener live on loopback only.
LOOPBACK_HOST: str = "127.0.0.1"

DEFAULT_TERM_TYPE: str = "xterm-256color"


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass(frozen=True)
class Config:
    """
    Options shared by the host and connect flows.

    Attributes:
        host_id: UUID literal, or path to a file whose contents identify the host.
        relay_server: Relay address given to the tunnel client.
        proxy: Optional HTTP/SOCKS proxy URL for reaching the relay.
        auth: Optional opaque relay credential ("user:pass").
        retry_period: Seconds between tunnel attempts; also the SSH dial timeout.
        enable_sftp: Serve (host) or open (connect) SFTP.
        tunnel_binary: chisel executable name or path.
        verbose: Ask the tunnel client for verbose output.
    """

    host_id: str = ""
    relay_server: str = ""
    proxy: str | None = None
    auth: str | None = None
    retry_period: float = DEFAULT_RETRY_PERIOD
    enable_sftp: bool = False
    tunnel_binary: str = DEFAULT_TUNNEL_BINARY
    verbose: bool = True
