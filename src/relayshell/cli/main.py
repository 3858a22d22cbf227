"""
relayshell CLI entry point.

Usage:
    relayshell [OPTIONS] COMMAND [ARGS]...

Commands:
    host     Serve shell sessions through the relay
    connect  Connect to a host through the relay
    version  Show version
"""

import typer

from relayshell import __version__
from relayshell.cli.commands import connect, host, shell
from relayshell.cli.output import console

app = typer.Typer(
    name="relayshell",
    help="Remote shell sessions over a relay tunnel",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(host.app, name="host")
app.add_typer(connect.app, name="connect")
app.add_typer(shell.app, name="sh", hidden=True)


@app.command()
def version():
    """Show relayshell version."""
    console.print(f"relayshell {__version__}")


def run():
    """Run the CLI."""
    app()


if __name__ == "__main__":
    run()
