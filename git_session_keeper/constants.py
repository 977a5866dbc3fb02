"""Shared constants for git-session-keeper."""

from dataclasses import dataclass
from typing import List


@dataclass
class ColumnDefinition:
    """Definition of a table column."""

    key: str
    label: str
    width: int = 0  # 0 means auto-width


COLUMNS: List[ColumnDefinition] = [
    ColumnDefinition("name", "Session", 24),
    ColumnDefinition("branch", "Branch", 30),
    ColumnDefinition("status", "Status", 8),
    ColumnDefinition("changes", "Changes", 10),
    ColumnDefinition("sync", "Sync", 8),
    ColumnDefinition("cpu", "CPU", 7),
    ColumnDefinition("memory", "Memory", 9),
    ColumnDefinition("sandbox", "Sandbox", 8),
    ColumnDefinition("notes", "Notes", 30),
]

WEB_COLUMNS: List[ColumnDefinition] = [
    ColumnDefinition("id", "Web Session", 12),
    ColumnDefinition("description", "Description", 30),
    ColumnDefinition("origin", "Origin", 10),
    ColumnDefinition("branch", "Branch", 30),
    ColumnDefinition("status", "Status", 10),
    ColumnDefinition("created", "Created", 16),
]


# Symbol constants
SYMBOL_CLEAN = "✓"
SYMBOL_SANDBOXED = "✓"
SYMBOL_UNSANDBOXED = "✗"
SYMBOL_FOCUSED = " *"
SYMBOL_AHEAD = "↑"
SYMBOL_BEHIND = "↓"
SYMBOL_DELEGATED = "⇢ web"


# Status display names
STATUS_DISPLAY = {
    "idle": "idle",
    "running": "running",
    "waiting": "waiting",
    "error": "error",
}


# CLI colors (Rich color names)
STATUS_COLORS = {
    "idle": None,  # Default color
    "running": "green",
    "waiting": "yellow",
    "error": "red",
}

WEB_STATUS_COLORS = {
    "active": "cyan",
    "completed": "dim",
    "unknown": "yellow",
}


LEGEND_TEXT = """
Legend:
✓ = Clean worktree        S = Staged files
U = Uncommitted files     ↑/↓ = Ahead/behind upstream
* = Focused session       ⇢ web = Surface handed off to the web

Colors:
Green = Running           Yellow = Waiting for input
Red = Process exited unexpectedly
"""
