"""Allow ``python -m relayshell``; also the re-exec target for host shells."""

from relayshell.cli.main import run

if __name__ == "__main__":
    run()
