"""Worktree data models."""

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class WorktreeInfo:
    """Information about a git worktree."""

    path: str
    branch_name: str
    commit_sha: str
    is_main: bool  # Is this the main working tree?
    is_orphaned: bool  # Directory missing?
    session_name: Optional[str] = None  # Set for worktrees under the session root

    def __str__(self) -> str:
        """String representation of worktree."""
        status = "orphaned" if self.is_orphaned else "active"
        main_marker = " (main)" if self.is_main else ""
        return f"{self.branch_name or '(detached)'} @ {self.path}{main_marker} [{status}]"


@dataclass(frozen=True)
class WorktreeStatus:
    """Git status snapshot of one worktree, replaced wholesale on every read."""

    branch_name: str
    staged_files: Tuple[str, ...] = field(default_factory=tuple)
    uncommitted_files: Tuple[str, ...] = field(default_factory=tuple)
    ahead: int = 0
    behind: int = 0

    @property
    def is_clean(self) -> bool:
        return not self.staged_files and not self.uncommitted_files

    @property
    def staged_count(self) -> int:
        return len(self.staged_files)

    @property
    def uncommitted_count(self) -> int:
        return len(self.uncommitted_files)


@dataclass(frozen=True)
class ArchivedWorktree:
    """A worktree moved out of git's management, kept for a later restore."""

    archive_id: str
    branch_name: str
    archived_at: float
    original_path: str
    archive_path: str
    commit_sha: str = ""
    uncommitted_count: int = 0
    session_name: Optional[str] = None  # Name of the session that owned it

    def to_dict(self) -> dict:
        return {
            "archive_id": self.archive_id,
            "branch_name": self.branch_name,
            "archived_at": self.archived_at,
            "original_path": self.original_path,
            "archive_path": self.archive_path,
            "commit_sha": self.commit_sha,
            "uncommitted_count": self.uncommitted_count,
            "session_name": self.session_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArchivedWorktree":
        return cls(
            archive_id=data["archive_id"],
            branch_name=data["branch_name"],
            archived_at=float(data.get("archived_at", 0)),
            original_path=data["original_path"],
            archive_path=data["archive_path"],
            commit_sha=data.get("commit_sha", ""),
            uncommitted_count=int(data.get("uncommitted_count", 0)),
            session_name=data.get("session_name"),
        )
