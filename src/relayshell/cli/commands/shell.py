"""Hidden ``sh`` command: the process each host session re-executes."""

import typer

from relayshell.ssh.pty_process import exec_login_shell

app = typer.Typer(help="Start the login shell (used by host sessions)")


@app.callback(invoke_without_command=True)
def sh():
    """Replace this process with the user's login shell."""
    exec_login_shell()
