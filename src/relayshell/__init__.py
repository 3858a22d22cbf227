"""
relayshell: SSH and SFTP access to hosts without a reachable address.

A host exposes a local SSH service through a reverse tunnel to a public
relay; a client dials the relay and talks to that service as if it were
local. Both ends agree on the tunnel port by hashing a shared host id.
"""

__version__ = "0.1.0"
