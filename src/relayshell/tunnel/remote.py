"""
Tunnel remote mapping.

Rendered in the relay client's remote syntax:

    [R:][local_port:]remote_port

    R:40001        host side: relay listens on 40001, traffic comes back to
                   the host's local 40001
    51234:40001    connect side: local 51234 forwards to the relay's 40001
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TunnelRemote:
    """One port mapping handed to the tunnel client."""

    remote_port: int
    local_port: int = 0  # 0 lets the relay side pick
    reversed: bool = False

    def __str__(self) -> str:
        parts = []
        if self.reversed:
            parts.append("R")
        if self.local_port > 0:
            parts.append(str(self.local_port))
        parts.append(str(self.remote_port))
        return ":".join(parts)
