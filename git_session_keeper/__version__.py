"""Version information for git-session-keeper."""

__version__ = "0.1.0"
