"""
Enumeration types for relayshell.

This module defines the enumeration types shared across the tunnel, session
and CLI layers.
"""

from enum import Enum


# =============================================================================
# Tunnel Enums
# =============================================================================


class TunnelState(str, Enum):
    """
    Lifecycle of the tunnel supervisor.

    State transitions:
        IDLE -> CONNECTING -> CONNECTED -> DISCONNECTED -> CONNECTING ...
        CONNECTING -> FAILED (client could not be constructed, terminal)
        Any -> STOPPED (cancelled)
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    STOPPED = "stopped"


# =============================================================================
# Logging Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace, including tunnel client output
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
