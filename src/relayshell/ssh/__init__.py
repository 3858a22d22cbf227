"""SSH session server, client and terminal plumbing."""
