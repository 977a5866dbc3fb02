"""Git status reader for session worktrees."""

import os
from typing import Optional, Tuple

import git

from git_session_keeper.exceptions import GitCommandFailed, WorktreeMissing
from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.worktree import WorktreeStatus

logger = get_logger(__name__)


def parse_porcelain_status(output: str) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """Split ``git status --porcelain`` output into staged and uncommitted paths.

    Porcelain format is ``XY path``: X is the index column, Y the worktree
    column. A file can be both staged and uncommitted (e.g. ``MM``).

    Returns:
        Tuple of (staged_files, uncommitted_files)
    """
    staged = []
    uncommitted = []
    for line in output.split("\n"):
        if len(line) < 4:
            continue

        index_status = line[0]
        worktree_status = line[1]
        path = line[3:]
        if " -> " in path:
            # Renames report "old -> new"
            path = path.split(" -> ", 1)[1]

        if line.startswith("??"):
            uncommitted.append(path)
            continue

        if index_status not in (" ", "?"):
            staged.append(path)
        if worktree_status != " ":
            uncommitted.append(path)

    return tuple(staged), tuple(uncommitted)


def _stderr(error: git.exc.GitCommandError) -> str:
    return (error.stderr if getattr(error, "stderr", None) else str(error)).strip()


class GitStatusReader:
    """Reads staged/uncommitted/ahead/behind for a worktree."""

    def read_status(self, worktree_path: str, timeout: Optional[float] = None) -> WorktreeStatus:
        """Read a fresh status snapshot.

        Args:
            worktree_path: Checkout directory of the session
            timeout: Seconds after which git subprocesses are killed

        Raises:
            WorktreeMissing: the directory is gone, before or during the read
            GitCommandFailed: any other git failure, including a killed read
        """
        if not os.path.isdir(worktree_path):
            raise WorktreeMissing(worktree_path)

        try:
            repo = git.Repo(worktree_path)
        except (git.exc.NoSuchPathError, git.exc.InvalidGitRepositoryError) as e:
            # Directory survived but its .git link did not
            logger.debug(f"Worktree {worktree_path} is no longer a checkout: {e}")
            raise WorktreeMissing(worktree_path) from e

        execute_kwargs = {}
        if timeout is not None:
            execute_kwargs["kill_after_timeout"] = timeout

        try:
            try:
                output = repo.git.status("--porcelain", **execute_kwargs)
            except git.exc.GitCommandError as e:
                if not os.path.isdir(worktree_path):
                    raise WorktreeMissing(worktree_path) from e
                raise GitCommandFailed("status", worktree_path, _stderr(e)) from e

            staged, uncommitted = parse_porcelain_status(output)

            try:
                branch_name = repo.active_branch.name
            except TypeError:
                branch_name = ""  # Detached HEAD

            ahead, behind = self._ahead_behind(repo, worktree_path, branch_name, execute_kwargs)
        finally:
            repo.close()

        return WorktreeStatus(
            branch_name=branch_name,
            staged_files=staged,
            uncommitted_files=uncommitted,
            ahead=ahead,
            behind=behind,
        )

    def _ahead_behind(self, repo: git.Repo, worktree_path: str, branch_name: str,
                      execute_kwargs: dict) -> Tuple[int, int]:
        """Commits ahead/behind the upstream, 0/0 without one."""
        if not branch_name:
            return 0, 0

        try:
            repo.git.rev_parse("--abbrev-ref", "--symbolic-full-name", "@{upstream}", **execute_kwargs)
        except git.exc.GitCommandError:
            logger.debug(f"No upstream configured for {branch_name}")
            return 0, 0

        try:
            counts = repo.git.rev_list("--left-right", "--count", "HEAD...@{upstream}", **execute_kwargs)
        except git.exc.GitCommandError as e:
            if not os.path.isdir(worktree_path):
                raise WorktreeMissing(worktree_path) from e
            raise GitCommandFailed("rev-list", worktree_path, _stderr(e)) from e

        ahead, behind = counts.split()
        return int(ahead), int(behind)
