"""SFTP subsystem served by the host."""

import asyncssh

from relayshell.utils.logger import get_logger

logger = get_logger(__name__)


class HostSFTPServer(asyncssh.SFTPServer):
    """
    Filesystem SFTP server for one session.

    Serves the host filesystem with the permissions of the host process. The
    client closing the session is the normal way for it to end.
    """

    def __init__(self, chan: asyncssh.SSHServerChannel):
        super().__init__(chan)
        self._peer = chan.get_extra_info("peername")
        logger.debug(f"[SFTP {self._peer}] Session started")

    def exit(self) -> None:
        logger.debug(f"[SFTP {self._peer}] Client exited session")
        super().exit()
