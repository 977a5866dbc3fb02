"""Formatting utilities for git-session-keeper.

This package provides formatting functions for displaying session information,
organized into logical modules:
- date: Date and time formatting
- session: Session field formatting
- status: Status text and styles
"""

# Date formatters
from .date import format_date, format_age

# Session formatters
from .session import (
    format_session_name,
    format_changes,
    format_sync,
    format_cpu,
    format_memory,
    format_sandbox,
    format_notes,
)

# Status formatters
from .status import (
    format_status,
    get_status_style,
    get_web_status_style,
)

__all__ = [
    # Date
    "format_date",
    "format_age",
    # Session
    "format_session_name",
    "format_changes",
    "format_sync",
    "format_cpu",
    "format_memory",
    "format_sandbox",
    "format_notes",
    # Status
    "format_status",
    "get_status_style",
    "get_web_status_style",
]
