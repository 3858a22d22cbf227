"""Byte pumps between SSH streams and raw file descriptors."""

import asyncio
import errno
import os

import asyncssh

CHUNK_SIZE = 1024


async def read_fd(fd: int, size: int = CHUNK_SIZE) -> bytes:
    """
    Read from a file descriptor without blocking the event loop.

    Waits for readability with ``loop.add_reader`` so the read stays
    cancellable. A pty master whose slave side is gone reports EIO; that is
    returned as end of stream.

    Returns:
        Data read, or empty bytes at end of stream.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def on_readable():
        if future.done():
            return
        try:
            data = os.read(fd, size)
        except OSError as e:
            if e.errno == errno.EIO:
                future.set_result(b"")
            else:
                future.set_exception(e)
            return
        future.set_result(data)

    try:
        loop.add_reader(fd, on_readable)
    except PermissionError:
        # Regular files cannot be polled and never block
        return os.read(fd, size)
    try:
        return await future
    finally:
        loop.remove_reader(fd)


def write_fd(fd: int, data: bytes) -> None:
    """Write all of ``data`` to a file descriptor."""
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]


async def bind_fd_writer(fd: int, writer):
    """
    Pipe data from a file descriptor to an SSH writer until EOF or error.

    Args:
        fd: Readable file descriptor (pty master, local stdin).
        writer: asyncssh SSHWriter.
    """
    while True:
        try:
            data = await read_fd(fd)
            if not data:
                break
            writer.write(data)
            await writer.drain()
        except (OSError, asyncssh.Error):
            break


async def bind_reader_fd(reader, fd: int):
    """Pipe data from an SSH reader to a file descriptor until EOF or error."""
    while True:
        try:
            data = await reader.read(CHUNK_SIZE)
            if not data:
                break
            write_fd(fd, data)
        except (OSError, asyncssh.Error):
            break
