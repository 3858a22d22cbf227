"""relayshell command line interface."""
