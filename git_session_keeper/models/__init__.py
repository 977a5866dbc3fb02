"""Data models for git-session-keeper."""

from .process import ProcessMetrics
from .session import ProjectState, SandboxOverride, Session, SessionStatus
from .web_session import WebSession, WebSessionOrigin, WebSessionStatus
from .worktree import ArchivedWorktree, WorktreeInfo, WorktreeStatus

__all__ = [
    "ArchivedWorktree",
    "ProcessMetrics",
    "ProjectState",
    "SandboxOverride",
    "Session",
    "SessionStatus",
    "WebSession",
    "WebSessionOrigin",
    "WebSessionStatus",
    "WorktreeInfo",
    "WorktreeStatus",
]
