"""
Tunnel layer.

Drives a relay tunnel client (chisel) and keeps it alive with a fixed-period
retry loop. The relay wire protocol itself lives in the client binary.
"""

from relayshell.tunnel.client import (
    ChiselClient,
    TunnelClient,
    TunnelClientFactory,
    TunnelClientOptions,
)
from relayshell.tunnel.remote import TunnelRemote
from relayshell.tunnel.supervisor import TunnelSupervisor

__all__ = [
    "ChiselClient",
    "TunnelClient",
    "TunnelClientFactory",
    "TunnelClientOptions",
    "TunnelRemote",
    "TunnelSupervisor",
]
