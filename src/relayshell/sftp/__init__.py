"""Interactive SFTP shell and host-side SFTP subsystem."""
