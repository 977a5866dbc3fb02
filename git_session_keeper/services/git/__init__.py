"""Git-related services for git-session-keeper."""

from .status_reader import GitStatusReader, parse_porcelain_status
from .worktrees import WorktreeService, slugify_branch, validate_branch_name

__all__ = [
    "GitStatusReader",
    "WorktreeService",
    "parse_porcelain_status",
    "slugify_branch",
    "validate_branch_name",
]
