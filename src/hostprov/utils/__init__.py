"""Shared helpers: commands, files, templates, systemd and logging."""
