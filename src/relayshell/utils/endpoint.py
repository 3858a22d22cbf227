"""
Endpoint derivation.

Host and connect sides never negotiate a port. Both hash the same host id
into the 16-bit port space, so the tunnel mappings line up without any
coordination beyond sharing the id.
"""

import socket
import uuid

from relayshell.config import LOOPBACK_HOST
from relayshell.exceptions import InvalidHostIDError

# 32-bit FNV-1 parameters
FNV32_OFFSET_BASIS = 0x811C9DC5
FNV32_PRIME = 0x01000193

PORT_SPACE = 65536


def fnv1_32(data: bytes) -> int:
    """FNV-1 (multiply, then xor) 32-bit hash."""
    h = FNV32_OFFSET_BASIS
    for byte in data:
        h = (h * FNV32_PRIME) & 0xFFFFFFFF
        h ^= byte
    return h


def derive_port(identifier: str) -> int:
    """
    Map a host identifier to a port number.

    Pure and stable across processes and machines. Unrelated identifiers may
    collide; with a single relay that is an accepted risk.

    Args:
        identifier: Resolved host identifier.

    Returns:
        Port in [0, 65535].
    """
    return fnv1_32(identifier.encode("utf-8", errors="surrogateescape")) % PORT_SPACE


def resolve_host_id(raw: str) -> str:
    """
    Resolve the --host-id value to the identifier used for port derivation.

    A readable file wins: its contents are returned verbatim. Otherwise the
    value itself must parse as a UUID.

    Raises:
        InvalidHostIDError: Neither a readable file nor a UUID.
    """
    try:
        with open(raw, "rb") as f:
            return f.read().decode("utf-8", errors="surrogateescape")
    except (OSError, ValueError):
        pass

    try:
        uuid.UUID(raw)
    except (ValueError, TypeError):
        raise InvalidHostIDError(raw)

    return raw


def get_free_port(host: str = LOOPBACK_HOST) -> int:
    """
    Find a currently free local TCP port.

    The listener is released immediately; the port is only reserved by
    convention until the tunnel client binds it.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]
