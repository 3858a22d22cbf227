"""relayshell exception classes."""

import asyncssh


class RelayShellError(Exception):
    """Base exception for relayshell operations."""

    pass


class InvalidHostIDError(RelayShellError):
    """Host id is neither a UUID nor a readable file."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__("host id should be either uuid or path to file with it")


class TunnelConfigError(RelayShellError):
    """Tunnel client could not be constructed from its options."""

    pass


class TunnelClientError(RelayShellError):
    """Tunnel client failed to start or exited with an error."""

    pass


class StageError(RelayShellError):
    """A fatal stage of the connect or host flow failed."""

    def __init__(self, stage: str, error: BaseException | str):
        self.stage = stage
        self.error = error
        super().__init__(f"{stage}: {error}")


class PromptError(RelayShellError):
    """The SFTP shell could not read its next command line."""

    pass


_END_OF_STREAM = (EOFError, BrokenPipeError, asyncssh.ConnectionLost)


def is_end_of_stream(exc: BaseException | None) -> bool:
    """
    Check whether an exception, or anything in its cause chain, is an
    end-of-stream condition.

    Session teardown surfaces as EOF on either side; those are normal closes,
    not failures.
    """
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, _END_OF_STREAM):
            return True
        seen.add(id(exc))
        exc = exc.__cause__
    return False
