"""
Interactive SFTP command shell.

A small read-eval loop over an SFTP client. The shell tracks its own remote
working directory; relative remote paths are joined to it and canonicalized
by the server. Every command failure is printed and the loop goes on; only
failing to read the next command line ends the shell with an error.
"""

import fnmatch
import os
import posixpath
import shlex
import stat
from typing import Awaitable, Callable

import asyncssh
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from relayshell.exceptions import PromptError
from relayshell.utils.logger import get_logger

logger = get_logger(__name__)

PROMPT = "sftp> "
COPY_CHUNK_SIZE = 32 * 1024

# Mode for files created by `get`
LOCAL_FILE_MODE = 0o755

HELP_TEXT = """\
ls [dir]            list remote directory
lls [dir]           list local directory
cd dir              change remote directory
lcd dir             change local directory
pwd                 print remote directory
lpwd                print local directory
put local remote    upload a file
get remote local    download a file
rm pattern          remove remote files/directories matching a glob
help                show this help
exit                leave the shell"""

ReadLine = Callable[[str], Awaitable[str]]

# Errors a single command may hit; printed, never fatal to the shell
COMMAND_ERRORS = (asyncssh.Error, OSError)


def _is_dir(attrs) -> bool:
    return stat.S_ISDIR(attrs.permissions or 0)


class SftpShell:
    """
    Interactive shell state around an SFTP client.

    The SFTP client is held by reference; the shell only adds the remote
    working directory and the command table.
    """

    def __init__(
        self,
        sftp: asyncssh.SFTPClient,
        cwd: str,
        read_line: ReadLine,
        console: Console | None = None,
    ):
        """
        Initialize the shell.

        Args:
            sftp: Open SFTP client.
            cwd: Initial remote working directory.
            read_line: Coroutine function returning the next input line for a
                prompt; raises EOFError when input is exhausted.
            console: Output console (default: stdout).
        """
        self.sftp = sftp
        self.cwd = cwd
        self.read_line = read_line
        self.console = console or Console(highlight=False)

        self.commands = {
            "ls": self.ls,
            "lls": self.lls,
            "lcd": self.lcd,
            "cd": self.cd,
            "pwd": self.pwd,
            "lpwd": self.lpwd,
            "put": self.put,
            "get": self.get,
            "rm": self.rm,
            "help": self.help,
        }

    @classmethod
    async def create(
        cls,
        sftp: asyncssh.SFTPClient,
        read_line: ReadLine,
        console: Console | None = None,
    ) -> "SftpShell":
        """Build a shell starting in the server's working directory."""
        cwd = await sftp.getcwd()
        return cls(sftp, cwd, read_line, console)

    def echo(self, message: str) -> None:
        """Print a line verbatim (no markup)."""
        self.console.print(message, markup=False, highlight=False)

    # =========================================================================
    # Loop
    # =========================================================================

    async def run(self) -> None:
        """
        Read and execute commands until ``exit``.

        Raises:
            PromptError: The next command line could not be read. End of
                input is kept as the cause, so callers can treat it as a
                normal close.
        """
        while True:
            try:
                line = await self.read_line(PROMPT)
            except (EOFError, OSError) as e:
                raise PromptError(f"prompt: {e}") from e

            if not await self.execute(line):
                return

    async def execute(self, line: str) -> bool:
        """
        Execute one command line.

        Returns:
            False if the shell should stop, True otherwise.
        """
        try:
            parts = shlex.split(line)
        except ValueError as e:
            self.echo(str(e))
            return True

        if not parts:
            return True

        command, args = parts[0], parts[1:]
        if command == "exit":
            return False

        handler = self.commands.get(command)
        if handler is None:
            self.echo("unknown command")
            return True

        try:
            await handler(*args)
        except COMMAND_ERRORS as e:
            logger.debug(f"sftp {command} failed: {e!r}")
            self.echo(str(e))
        return True

    # =========================================================================
    # Paths
    # =========================================================================

    async def remote_path(self, path: str) -> str:
        """Absolute paths as-is; relative ones joined to cwd and canonicalized."""
        if posixpath.isabs(path):
            return path
        return await self.sftp.realpath(posixpath.join(self.cwd, path))

    async def _list_remote(self, path: str) -> list:
        names = await self.sftp.readdir(path)
        entries = [n for n in names if n.filename not in (".", "..")]
        return sorted(entries, key=lambda n: n.filename)

    # =========================================================================
    # Commands
    # =========================================================================

    async def ls(self, *args: str) -> None:
        path = await self.remote_path(args[0]) if args else self.cwd
        for entry in await self._list_remote(path):
            name = entry.filename
            if _is_dir(entry.attrs):
                name += "/"
            self.echo(name)

    async def lls(self, *args: str) -> None:
        path = args[0] if args else "."
        with os.scandir(path) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            name = os.path.normpath(os.path.join(path, entry.name))
            if entry.is_dir():
                name += "/"
            self.echo(name)

    async def lcd(self, *args: str) -> None:
        if len(args) != 1:
            self.echo("only one argument is accepted")
            return
        try:
            os.chdir(args[0])
        except OSError as e:
            self.echo(str(e))
            return
        await self.lpwd()

    async def cd(self, *args: str) -> None:
        if len(args) != 1:
            self.echo("only one argument is accepted")
            return

        target = await self.remote_path(args[0])
        attrs = await self.sftp.stat(target)
        if not _is_dir(attrs):
            self.echo("cannot change directory")
            return
        self.cwd = target

    async def pwd(self, *args: str) -> None:
        self.echo(self.cwd)

    async def lpwd(self, *args: str) -> None:
        self.echo(os.getcwd())

    async def put(self, *args: str) -> None:
        if len(args) != 2:
            self.echo("usage: put path-to-local-source path-to-remote-destination")
            return

        src_path = os.path.abspath(args[0])
        dst_path = await self.remote_path(args[1])

        with open(src_path, "rb") as src:
            size = os.fstat(src.fileno()).st_size
            async with self.sftp.open(dst_path, "wb") as dst:
                with self._progress() as progress:
                    task = progress.add_task("uploading", total=size)
                    while True:
                        chunk = src.read(COPY_CHUNK_SIZE)
                        if not chunk:
                            break
                        await dst.write(chunk)
                        progress.update(task, advance=len(chunk))

    async def get(self, *args: str) -> None:
        if len(args) != 2:
            self.echo("usage: get path-to-remote-source path-to-local-destination")
            return

        src_path = await self.remote_path(args[0])
        dst_path = os.path.abspath(args[1])

        async with self.sftp.open(src_path, "rb") as src:
            size = (await src.stat()).size or 0
            fd = os.open(dst_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, LOCAL_FILE_MODE)
            with os.fdopen(fd, "wb") as dst:
                with self._progress() as progress:
                    task = progress.add_task("downloading", total=size)
                    while True:
                        chunk = await src.read(COPY_CHUNK_SIZE)
                        if not chunk:
                            break
                        dst.write(chunk)
                        progress.update(task, advance=len(chunk))

    async def rm(self, *args: str) -> None:
        if len(args) != 1:
            self.echo("usage: rm pattern")
            return

        pattern = args[0]
        directory = await self.remote_path(posixpath.dirname(pattern) or ".")
        base = posixpath.basename(pattern)

        for entry in await self._list_remote(directory):
            if not fnmatch.fnmatchcase(entry.filename, base):
                continue

            path = posixpath.join(directory, entry.filename)
            try:
                attrs = await self.sftp.stat(path)
            except COMMAND_ERRORS as e:
                self.echo(str(e))
                continue

            try:
                if _is_dir(attrs):
                    await self.sftp.rmtree(path)
                else:
                    await self.sftp.remove(path)
            except COMMAND_ERRORS as e:
                self.echo(f"error: {e}")

    async def help(self, *args: str) -> None:
        self.echo(HELP_TEXT)

    def _progress(self) -> Progress:
        return Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=self.console,
        )
