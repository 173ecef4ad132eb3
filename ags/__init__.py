"""Agent sandbox helpers: configuration, git mounts, shell integration and updates."""

__version__ = "0.1.0"