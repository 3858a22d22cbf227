"""Tests for exception formatting and end-of-stream detection."""

import asyncssh

from relayshell.exceptions import PromptError, StageError, is_end_of_stream


def test_stage_error_prefixes_stage():
    cause = ConnectionRefusedError("connection refused")
    error = StageError("ssh connect", cause)

    assert str(error) == "ssh connect: connection refused"
    assert error.stage == "ssh connect"
    assert error.error is cause


def test_end_of_stream_detection():
    assert is_end_of_stream(EOFError())
    assert is_end_of_stream(BrokenPipeError())
    assert is_end_of_stream(asyncssh.ConnectionLost("peer went away"))
    assert not is_end_of_stream(OSError("boom"))
    assert not is_end_of_stream(None)


def test_end_of_stream_follows_cause_chain():
    try:
        try:
            raise EOFError("end of input")
        except EOFError as e:
            raise PromptError(f"prompt: {e}") from e
    except PromptError as e:
        wrapped = e

    assert is_end_of_stream(wrapped)


def test_unrelated_context_is_not_end_of_stream():
    try:
        try:
            raise EOFError("end of input")
        except EOFError:
            raise PromptError("prompt: bad terminal")
    except PromptError as e:
        wrapped = e

    assert not is_end_of_stream(wrapped)
