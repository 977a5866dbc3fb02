"""Session field formatting utilities."""

from git_session_keeper.constants import (
    SYMBOL_AHEAD,
    SYMBOL_BEHIND,
    SYMBOL_CLEAN,
    SYMBOL_DELEGATED,
    SYMBOL_FOCUSED,
    SYMBOL_SANDBOXED,
    SYMBOL_UNSANDBOXED,
)
from git_session_keeper.models.session import SandboxOverride, Session


def format_session_name(name: str, is_focused: bool = False) -> str:
    """
    Format session name with optional focus indicator.

    Args:
        name: Session display name
        is_focused: Whether this is the focused session

    Returns:
        Formatted session name
    """
    return name + (SYMBOL_FOCUSED if is_focused else "")


def format_changes(session: Session) -> str:
    """
    Format the worktree state of a session.

    Returns:
        ✓ when clean, otherwise counts such as "2S 3U"; "?" once git reads
        have been retired because the worktree is gone.

    Example:
        "✓" for a clean worktree
        "1S" for one staged file
        "1S 4U" for one staged and four uncommitted files
    """
    if session.git_retired:
        return "?"
    if session.is_clean:
        return SYMBOL_CLEAN

    parts = []
    if session.staged_count:
        parts.append(f"{session.staged_count}S")
    if session.uncommitted_count:
        parts.append(f"{session.uncommitted_count}U")
    return " ".join(parts)


def format_sync(ahead: int, behind: int) -> str:
    """
    Format ahead/behind counts, empty when in sync.

    Example:
        "↑2" for two unpushed commits, "↑1↓3" when diverged
    """
    text = ""
    if ahead:
        text += f"{SYMBOL_AHEAD}{ahead}"
    if behind:
        text += f"{SYMBOL_BEHIND}{behind}"
    return text


def format_cpu(cpu_percent: float) -> str:
    return f"{cpu_percent:.1f}%"


def format_memory(memory_mb: float) -> str:
    if memory_mb >= 1024:
        return f"{memory_mb / 1024:.1f} GB"
    return f"{memory_mb:.0f} MB"


def format_sandbox(enabled: bool, override: SandboxOverride) -> str:
    """
    Format the effective sandbox setting, marking sessions that override the global toggle.

    Example:
        "✓" following the global toggle, "✗ (disabled)" for an explicit override
    """
    symbol = SYMBOL_SANDBOXED if enabled else SYMBOL_UNSANDBOXED
    if override == SandboxOverride.GLOBAL:
        return symbol
    return f"{symbol} ({override.value})"


def format_notes(session: Session) -> str:
    """Delegation marker and the latest transient warning."""
    notes = []
    if session.surface_delegated:
        notes.append(SYMBOL_DELEGATED)
    if session.last_warning:
        notes.append(session.last_warning)
    return " ".join(notes)
