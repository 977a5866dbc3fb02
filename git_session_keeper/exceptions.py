"""Custom exceptions for git-session-keeper"""

from typing import Optional


class SessionKeeperError(Exception):
    """Base exception for all git-session-keeper errors."""
    pass


class ValidationError(SessionKeeperError):
    """Bad input from the caller. Never retried."""
    pass


class TransientIOError(SessionKeeperError):
    """Filesystem, process or git tool hiccup."""
    pass


class ResourceGoneError(SessionKeeperError):
    """A process or worktree disappeared underneath a session."""
    pass


class ConflictError(SessionKeeperError):
    """The requested change collides with existing state."""
    pass


class InvalidBranchName(ValidationError):
    """Exception raised for branch names that are unsafe to hand to git."""

    def __init__(self, branch: str, reason: str = "invalid branch name"):
        self.branch = branch
        super().__init__(f"Branch name '{branch}' rejected: {reason}")


class InvalidSessionName(ValidationError):
    """Exception raised for empty or unusable session names."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid session name: '{name}'")


class NotAGitRepository(ValidationError):
    """Exception raised when a project path is not a git repository."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path is not a git repository: {path}")


class SessionNotFound(ValidationError):
    """Exception raised when a session id is unknown."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class WebSessionNotFound(ValidationError):
    """Exception raised when a web session id is unknown."""

    def __init__(self, web_session_id: str):
        self.web_session_id = web_session_id
        super().__init__(f"Web session not found: {web_session_id}")


class SurfaceUnavailable(ValidationError):
    """Exception raised when a session has no live local terminal surface."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} has no live terminal surface")


class TeleportTargetRequired(ValidationError):
    """Exception raised when a manual web session is teleported without a target session."""

    def __init__(self, web_session_id: str):
        self.web_session_id = web_session_id
        super().__init__(f"Web session {web_session_id} has no origin branch; pass a target session")


class TeleportBranchMismatch(ValidationError):
    """Exception raised when a handed-off web session is teleported into a session on another branch."""

    def __init__(self, web_session_id: str, origin_branch: str, target_branch: str):
        self.web_session_id = web_session_id
        self.origin_branch = origin_branch
        self.target_branch = target_branch
        super().__init__(
            f"Web session {web_session_id} belongs to branch '{origin_branch}', "
            f"not '{target_branch}'"
        )


class ArchiveNotFound(ValidationError):
    """Exception raised when an archive id is unknown."""

    def __init__(self, archive_id: str):
        self.archive_id = archive_id
        super().__init__(f"Archived worktree not found: {archive_id}")


class InvalidSandboxOverride(ValidationError):
    """Exception raised for unknown sandbox override values."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown sandbox override: {value!r}")


class GitCommandFailed(TransientIOError):
    """Exception raised for errors in Git operations."""

    def __init__(self, operation: str, path: Optional[str] = None, stderr: Optional[str] = None):
        self.operation = operation
        self.path = path
        self.stderr = stderr

        error_msg = f"Git operation '{operation}' failed"
        if path:
            error_msg += f" for '{path}'"
        if stderr:
            error_msg += f": {stderr}"

        super().__init__(error_msg)


class ReaderTimeout(TransientIOError):
    """Exception raised when a status read does not finish in time."""

    def __init__(self, session_id: str, timeout: float):
        self.session_id = session_id
        self.timeout = timeout
        super().__init__(f"Status read for session {session_id} timed out after {timeout:.2f}s")


class WorktreeMissing(ResourceGoneError):
    """Exception raised when a worktree directory no longer exists."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Worktree is missing: {path}")


class ProcessGone(ResourceGoneError):
    """Exception raised when a session's process no longer exists."""

    def __init__(self, pid: Optional[int]):
        self.pid = pid
        super().__init__(f"Process {pid} no longer exists")


class WorktreeExists(ConflictError):
    """Exception raised when the target worktree directory is already populated."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Worktree directory already exists and is not empty: {path}")


class BranchInUse(ConflictError):
    """Exception raised when a branch is already owned by a live session or worktree."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"Branch '{branch}' is already checked out by another session")


class RebaseInProgress(ConflictError):
    """Exception raised when a worktree is already in the middle of a rebase."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"A rebase is already in progress in {path}; finish or abort it first")


class RebaseConflict(ConflictError):
    """Exception raised when syncing a worktree hits conflicts. The rebase has been aborted."""

    def __init__(self, path: str, base: str):
        self.path = path
        self.base = base
        super().__init__(f"Rebasing {path} onto {base} hit conflicts; the rebase was aborted")


class MergeConflict(ConflictError):
    """Exception raised when merging a session branch hits conflicts. The merge has been aborted."""

    def __init__(self, branch: str, target: str):
        self.branch = branch
        self.target = target
        super().__init__(f"Merging '{branch}' into '{target}' hit conflicts; the merge was aborted")


class DirtyWorktree(ConflictError):
    """Exception raised when removing a worktree with uncommitted changes."""

    def __init__(self, path: str, staged: int = 0, uncommitted: int = 0):
        self.path = path
        self.staged = staged
        self.uncommitted = uncommitted
        super().__init__(
            f"Worktree {path} has changes ({staged} staged, {uncommitted} uncommitted); "
            "pass force=True to remove it anyway"
        )


class OwnershipConflict(ConflictError):
    """Exception raised when the interactive surface is owned by the other side."""

    def __init__(self, unit: str, holder: str, message: Optional[str] = None):
        self.unit = unit
        self.holder = holder
        error_msg = f"Surface for '{unit}' is held by {holder}"
        if message:
            error_msg += f": {message}"
        super().__init__(error_msg)


class HandoffInterrupted(OwnershipConflict):
    """Exception raised when the local process exits while a handoff is in flight."""

    def __init__(self, unit: str):
        super().__init__(unit, "nobody", "local process exited during handoff; retry the handoff")
