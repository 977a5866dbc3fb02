"""Worktree operations service for git-session-keeper."""

import json
import os
import re
import shutil
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import git

from git_session_keeper.config import Config, ConfigStore
from git_session_keeper.exceptions import (
    ArchiveNotFound,
    BranchInUse,
    DirtyWorktree,
    GitCommandFailed,
    InvalidBranchName,
    MergeConflict,
    NotAGitRepository,
    RebaseConflict,
    RebaseInProgress,
    WorktreeExists,
    WorktreeMissing,
)
from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.worktree import ArchivedWorktree, WorktreeInfo
from git_session_keeper.services.git.status_reader import parse_porcelain_status

logger = get_logger(__name__)

MAX_BRANCH_NAME_LENGTH = 255
BRANCH_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9/_-]*$")
_UNSAFE_SLUG_CHARS = re.compile(r"[^a-zA-Z0-9._-]")

# Tried in order when a branch has to be created
BASE_BRANCH_CANDIDATES = ("main", "master")

# Archived worktrees live here, under the worktree root
ARCHIVE_DIR_NAME = ".archive"
ARCHIVE_INDEX_FILE = "index.json"


def validate_branch_name(branch_name: str) -> None:
    """Reject branch names that are unsafe to pass to git.

    Raises:
        InvalidBranchName: with the reason the name was rejected
    """
    if not branch_name or not branch_name.strip():
        raise InvalidBranchName(branch_name or "", "branch name cannot be empty")
    if len(branch_name) > MAX_BRANCH_NAME_LENGTH:
        raise InvalidBranchName(branch_name, f"longer than {MAX_BRANCH_NAME_LENGTH} characters")
    if branch_name.startswith("-"):
        raise InvalidBranchName(branch_name, "cannot start with '-'")
    if ".." in branch_name:
        raise InvalidBranchName(branch_name, "cannot contain '..'")
    if not BRANCH_NAME_PATTERN.match(branch_name):
        raise InvalidBranchName(branch_name, "only letters, digits, '/', '_' and '-' are allowed")


def slugify_branch(branch_name: str) -> str:
    """Directory name for a branch's worktree (feat/x -> feat-x)."""
    return _UNSAFE_SLUG_CHARS.sub("", branch_name.replace("/", "-"))


def _stderr(error: git.exc.GitCommandError) -> str:
    return (error.stderr if getattr(error, "stderr", None) else str(error)).strip()


def _archive_ignore(directory: str, names: List[str]) -> List[str]:
    """copytree hook skipping symlinks and git metadata."""
    return [n for n in names if n == ".git" or os.path.islink(os.path.join(directory, n))]


class WorktreeService:
    """Service for creating, listing and retiring session worktrees.

    Mutating operations hold a lock per resolved project path, so two
    creates for the same branch cannot race in the same process.
    """

    def __init__(self, config_store: ConfigStore):
        self.config_store = config_store
        self._project_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @staticmethod
    def _resolve(path: str) -> str:
        return str(Path(path).expanduser().resolve())

    @contextmanager
    def _project_lock(self, project_path: str):
        with self._locks_guard:
            lock = self._project_locks.setdefault(project_path, threading.Lock())
        with lock:
            yield

    def _get_repo(self, project_path: str) -> git.Repo:
        """Get a fresh git.Repo instance for the project.

        A new instance per call keeps worker threads from sharing one.

        Raises:
            NotAGitRepository: if the path is not a git checkout
        """
        try:
            return git.Repo(project_path)
        except (git.exc.NoSuchPathError, git.exc.InvalidGitRepositoryError) as e:
            raise NotAGitRepository(project_path) from e

    def worktree_path_for(self, project_path: str, branch_name: str,
                          config: Optional[Config] = None) -> Path:
        """Where the worktree for branch_name lives."""
        config = config or self.config_store.get()
        root = config.worktree_root(self._resolve(project_path))
        return root / slugify_branch(branch_name)

    def create_worktree(self, project_path: str, branch_name: str,
                        in_use_branches: Iterable[str] = (),
                        config: Optional[Config] = None) -> WorktreeInfo:
        """Create a worktree for branch_name under the configured worktree root.

        The branch is created from the project's default base when it does not
        exist yet; an existing branch is checked out as is.

        Args:
            project_path: Root of the git repository
            branch_name: Branch to check out in the new worktree
            in_use_branches: Branches owned by live sessions of this project
            config: Snapshot to use, the store's current one otherwise

        Raises:
            InvalidBranchName, NotAGitRepository, BranchInUse, WorktreeExists,
            GitCommandFailed
        """
        validate_branch_name(branch_name)
        project = self._resolve(project_path)
        config = config or self.config_store.get()

        with self._project_lock(project):
            repo = self._get_repo(project)
            try:
                if branch_name in set(in_use_branches):
                    raise BranchInUse(branch_name)
                for existing in self._parse_worktree_list(repo, project, config):
                    if existing.branch_name == branch_name:
                        raise BranchInUse(branch_name)

                path = self.worktree_path_for(project, branch_name, config)
                if path.exists() and (not path.is_dir() or any(path.iterdir())):
                    raise WorktreeExists(str(path))

                path.parent.mkdir(parents=True, exist_ok=True)
                self._exclude_worktree_root(repo, project, path.parent)

                try:
                    if self._branch_exists(repo, branch_name):
                        repo.git.worktree("add", str(path), branch_name)
                    else:
                        base = self._default_base(repo)
                        logger.debug(f"Creating branch {branch_name} from {base}")
                        repo.git.worktree("add", "-b", branch_name, str(path), base)
                    commit_sha = repo.git.rev_parse(branch_name)
                except git.exc.GitCommandError as e:
                    raise GitCommandFailed("worktree add", str(path), _stderr(e)) from e
            finally:
                repo.close()

        logger.info(f"Created worktree for {branch_name} at {path}")
        return WorktreeInfo(
            path=str(path),
            branch_name=branch_name,
            commit_sha=commit_sha,
            is_main=False,
            is_orphaned=False,
            session_name=path.name,
        )

    def remove_worktree(self, project_path: str, path: str, force: bool = False) -> bool:
        """Remove the worktree at path.

        Without force a worktree with staged or uncommitted changes is refused.
        With force the checkout is removed and its branch is deleted only when
        it has no commits ahead of its upstream (or the default base).

        Returns:
            True if the branch was deleted as well

        Raises:
            DirtyWorktree, NotAGitRepository, GitCommandFailed
        """
        project = self._resolve(project_path)
        target = self._resolve(path)

        with self._project_lock(project):
            repo = self._get_repo(project)
            try:
                entry = self._find_entry(repo, project, target)
                branch_name = entry.branch_name if entry else ""

                if not os.path.isdir(target):
                    # Already gone from disk, only git's bookkeeping is left
                    logger.info(f"Worktree {target} is missing, pruning metadata")
                    self._prune(repo)
                    return False

                if not force:
                    self._ensure_clean(target)

                args = ["remove", target]
                if force:
                    args.append("--force")
                try:
                    repo.git.worktree(*args)
                except git.exc.GitCommandError as e:
                    raise GitCommandFailed("worktree remove", target, _stderr(e)) from e
                logger.info(f"Removed worktree at {target}")

                if not (force and branch_name):
                    return False
                return self._delete_branch_if_pushed(repo, branch_name)
            finally:
                repo.close()

    def list_worktrees(self, project_path: str, config: Optional[Config] = None) -> List[WorktreeInfo]:
        """List every worktree of the project, main checkout first.

        Raises:
            NotAGitRepository, GitCommandFailed
        """
        project = self._resolve(project_path)
        repo = self._get_repo(project)
        try:
            return self._parse_worktree_list(repo, project, config)
        finally:
            repo.close()

    def find_orphans(self, project_path: str, known_paths: Iterable[str],
                     config: Optional[Config] = None) -> List[WorktreeInfo]:
        """Worktrees under the session root that no session record points at."""
        known = {self._resolve(p) for p in known_paths}
        orphans = [
            wt for wt in self.list_worktrees(project_path, config)
            if not wt.is_main and wt.session_name and self._resolve(wt.path) not in known
        ]
        if orphans:
            logger.info(f"Found {len(orphans)} worktrees without a session in {project_path}")
        return orphans

    def prune_worktrees(self, project_path: str) -> None:
        """Prune metadata of worktrees whose directories are gone."""
        project = self._resolve(project_path)
        with self._project_lock(project):
            repo = self._get_repo(project)
            try:
                self._prune(repo)
            finally:
                repo.close()

    def sync_worktree(self, project_path: str, path: str) -> str:
        """Rebase the worktree's branch onto the project's default base.

        Fetches origin first when the project has one. A rebase that fails
        is aborted so the worktree is left as it was.

        Returns:
            The base the branch was rebased onto

        Raises:
            WorktreeMissing, RebaseInProgress, DirtyWorktree, RebaseConflict,
            NotAGitRepository, GitCommandFailed
        """
        project = self._resolve(project_path)
        target = self._resolve(path)

        with self._project_lock(project):
            repo = self._get_repo(project)
            try:
                if not os.path.isdir(target):
                    raise WorktreeMissing(target)
                wt_repo = git.Repo(target)
                try:
                    if self._rebase_in_progress(wt_repo, target):
                        raise RebaseInProgress(target)
                    self._ensure_clean(target)

                    if any(remote.name == "origin" for remote in repo.remotes):
                        try:
                            wt_repo.git.fetch("origin")
                        except git.exc.GitCommandError as e:
                            raise GitCommandFailed("fetch", target, _stderr(e)) from e

                    base = self._default_base(repo)
                    try:
                        wt_repo.git.rebase(base)
                    except git.exc.GitCommandError as e:
                        self._abort(wt_repo, "rebase", "--abort")
                        if "conflict" in str(e).lower():
                            raise RebaseConflict(target, base) from e
                        raise GitCommandFailed("rebase", target, _stderr(e)) from e
                finally:
                    wt_repo.close()
            finally:
                repo.close()

        logger.info(f"Rebased {target} onto {base}")
        return base

    def merge_worktree(self, project_path: str, path: str, squash: bool = False,
                       message: Optional[str] = None) -> str:
        """Merge the worktree's branch into the main branch of the project checkout.

        The project checkout is switched to the main branch first and must be
        clean. A squash merge is committed as a single commit. Conflicts abort
        the merge.

        Returns:
            Sha of the main branch after the merge

        Raises:
            WorktreeMissing, DirtyWorktree, MergeConflict, NotAGitRepository,
            GitCommandFailed
        """
        project = self._resolve(project_path)
        target = self._resolve(path)

        with self._project_lock(project):
            repo = self._get_repo(project)
            try:
                if not os.path.isdir(target):
                    raise WorktreeMissing(target)
                entry = self._find_entry(repo, project, target)
                branch_name = entry.branch_name if entry else ""
                if not branch_name:
                    raise GitCommandFailed("merge", target, "worktree is not on a branch")

                self._ensure_clean(project)
                main = self._main_branch(repo)
                try:
                    repo.git.checkout(main)
                except git.exc.GitCommandError as e:
                    raise GitCommandFailed("checkout", project, _stderr(e)) from e

                try:
                    if squash:
                        repo.git.merge("--squash", branch_name)
                        # Nothing staged when the branch has no new commits
                        if repo.is_dirty(index=True, working_tree=False, untracked_files=False):
                            repo.git.commit("-m", message or f"Squash merge branch '{branch_name}'")
                    elif message:
                        repo.git.merge("-m", message, branch_name)
                    else:
                        repo.git.merge("--no-edit", branch_name)
                except git.exc.GitCommandError as e:
                    self._abort(repo, "reset", "--merge")
                    if "conflict" in str(e).lower():
                        raise MergeConflict(branch_name, main) from e
                    raise GitCommandFailed("merge", project, _stderr(e)) from e

                sha = repo.head.commit.hexsha
            finally:
                repo.close()

        logger.info(f"Merged {branch_name} into {main}{' (squashed)' if squash else ''}")
        return sha

    # Archives

    def archive_root(self, project_path: str, config: Optional[Config] = None) -> Path:
        """Directory holding archived worktrees and their index."""
        config = config or self.config_store.get()
        return config.worktree_root(self._resolve(project_path)) / ARCHIVE_DIR_NAME

    def archive_worktree(self, project_path: str, path: str, force: bool = False,
                         session_name: Optional[str] = None,
                         config: Optional[Config] = None) -> ArchivedWorktree:
        """Copy the worktree into the archive and remove it from git.

        The branch is kept, so the worktree can be restored later with its
        uncommitted files. Symlinks are not archived.

        Raises:
            WorktreeMissing, DirtyWorktree, NotAGitRepository, GitCommandFailed
        """
        project = self._resolve(project_path)
        target = self._resolve(path)
        archive_dir = self.archive_root(project, config)

        with self._project_lock(project):
            repo = self._get_repo(project)
            try:
                if not os.path.isdir(target):
                    raise WorktreeMissing(target)
                staged, uncommitted = self._status_lists(target)
                if (staged or uncommitted) and not force:
                    raise DirtyWorktree(target, staged=len(staged), uncommitted=len(uncommitted))

                wt_repo = git.Repo(target)
                try:
                    if wt_repo.head.is_detached:
                        raise GitCommandFailed("archive", target, "worktree is not on a branch")
                    branch_name = wt_repo.active_branch.name
                    commit_sha = wt_repo.head.commit.hexsha
                finally:
                    wt_repo.close()

                archive_dir.mkdir(parents=True, exist_ok=True)
                entries = self._load_archive_index(archive_dir)
                archive_id = self._new_archive_id(archive_dir, Path(target).name, entries)
                archive_path = archive_dir / archive_id
                shutil.copytree(target, archive_path, ignore=_archive_ignore)

                try:
                    repo.git.worktree("remove", "--force", target)
                except git.exc.GitCommandError as e:
                    shutil.rmtree(archive_path, ignore_errors=True)
                    raise GitCommandFailed("worktree remove", target, _stderr(e)) from e

                archived = ArchivedWorktree(
                    archive_id=archive_id,
                    branch_name=branch_name,
                    archived_at=time.time(),
                    original_path=target,
                    archive_path=str(archive_path),
                    commit_sha=commit_sha,
                    uncommitted_count=len(uncommitted),
                    session_name=session_name,
                )
                entries.append(archived)
                self._save_archive_index(archive_dir, entries)
            finally:
                repo.close()

        logger.info(f"Archived worktree {target} as {archive_id}")
        return archived

    def restore_worktree(self, project_path: str, archive_id: str,
                         in_use_branches: Iterable[str] = (),
                         config: Optional[Config] = None) -> WorktreeInfo:
        """Re-create an archived worktree at its original path.

        Raises:
            ArchiveNotFound, BranchInUse, WorktreeExists, NotAGitRepository,
            GitCommandFailed
        """
        project = self._resolve(project_path)
        archive_dir = self.archive_root(project, config)

        with self._project_lock(project):
            repo = self._get_repo(project)
            try:
                entries = self._load_archive_index(archive_dir)
                archived = next((a for a in entries if a.archive_id == archive_id), None)
                if archived is None:
                    raise ArchiveNotFound(archive_id)

                branch_name = archived.branch_name
                if branch_name in set(in_use_branches):
                    raise BranchInUse(branch_name)
                for existing in self._parse_worktree_list(repo, project, config):
                    if existing.branch_name == branch_name:
                        raise BranchInUse(branch_name)

                original = Path(archived.original_path)
                if original.exists():
                    raise WorktreeExists(str(original))
                original.parent.mkdir(parents=True, exist_ok=True)

                try:
                    repo.git.worktree("add", str(original), branch_name)
                    commit_sha = repo.git.rev_parse(branch_name)
                except git.exc.GitCommandError as e:
                    raise GitCommandFailed("worktree add", str(original), _stderr(e)) from e

                shutil.copytree(archived.archive_path, original, ignore=_archive_ignore, dirs_exist_ok=True)

                self._save_archive_index(archive_dir, [a for a in entries if a.archive_id != archive_id])
                shutil.rmtree(archived.archive_path, ignore_errors=True)
            finally:
                repo.close()

        logger.info(f"Restored {archive_id} to {original}")
        return WorktreeInfo(
            path=str(original),
            branch_name=branch_name,
            commit_sha=commit_sha,
            is_main=False,
            is_orphaned=False,
            session_name=original.name,
        )

    def list_archives(self, project_path: str, config: Optional[Config] = None) -> List[ArchivedWorktree]:
        """Archived worktrees of the project, oldest first.

        Raises:
            NotAGitRepository
        """
        project = self._resolve(project_path)
        self._get_repo(project).close()
        return self._load_archive_index(self.archive_root(project, config))

    def delete_archive(self, project_path: str, archive_id: str, config: Optional[Config] = None) -> None:
        """Permanently delete an archived worktree. Its branch is kept.

        Raises:
            ArchiveNotFound, NotAGitRepository
        """
        project = self._resolve(project_path)
        archive_dir = self.archive_root(project, config)

        with self._project_lock(project):
            self._get_repo(project).close()
            entries = self._load_archive_index(archive_dir)
            archived = next((a for a in entries if a.archive_id == archive_id), None)
            if archived is None:
                raise ArchiveNotFound(archive_id)
            if os.path.isdir(archived.archive_path):
                shutil.rmtree(archived.archive_path)
            self._save_archive_index(archive_dir, [a for a in entries if a.archive_id != archive_id])

        logger.info(f"Deleted archive {archive_id}")

    @staticmethod
    def _new_archive_id(archive_dir: Path, name: str, entries: List[ArchivedWorktree]) -> str:
        taken = {a.archive_id for a in entries}
        base = f"{name}-{int(time.time())}"
        archive_id = base
        suffix = 2
        while archive_id in taken or (archive_dir / archive_id).exists():
            archive_id = f"{base}-{suffix}"
            suffix += 1
        return archive_id

    @staticmethod
    def _load_archive_index(archive_dir: Path) -> List[ArchivedWorktree]:
        """Read the archive index; a missing index is an empty archive.

        Raises:
            ValueError: if the index is not a valid JSON list of entries
        """
        index_file = archive_dir / ARCHIVE_INDEX_FILE
        if not index_file.exists():
            return []
        try:
            with open(index_file, "r", encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, list):
                raise ValueError("expected a list")
            return [ArchivedWorktree.from_dict(item) for item in raw]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Error parsing archive index {index_file}: {e}") from e

    @staticmethod
    def _save_archive_index(archive_dir: Path, entries: List[ArchivedWorktree]) -> None:
        index_file = archive_dir / ARCHIVE_INDEX_FILE
        temp_file = index_file.with_suffix(".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump([a.to_dict() for a in entries], f, indent=2)
            temp_file.replace(index_file)
        finally:
            if temp_file.exists():
                temp_file.unlink()

    def _prune(self, repo: git.Repo) -> None:
        try:
            repo.git.worktree("prune")
        except git.exc.GitCommandError as e:
            raise GitCommandFailed("worktree prune", repo.working_dir, _stderr(e)) from e
        logger.debug("Pruned orphaned worktree metadata")

    def _status_lists(self, path: str) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        wt_repo = git.Repo(path)
        try:
            output = wt_repo.git.status("--porcelain")
        except git.exc.GitCommandError as e:
            raise GitCommandFailed("status", path, _stderr(e)) from e
        finally:
            wt_repo.close()
        return parse_porcelain_status(output)

    def _ensure_clean(self, path: str) -> None:
        staged, uncommitted = self._status_lists(path)
        if staged or uncommitted:
            raise DirtyWorktree(path, staged=len(staged), uncommitted=len(uncommitted))

    def _find_entry(self, repo: git.Repo, project: str, target: str) -> Optional[WorktreeInfo]:
        for wt in self._parse_worktree_list(repo, project):
            if self._resolve(wt.path) == target:
                return wt
        return None

    @staticmethod
    def _branch_exists(repo: git.Repo, branch_name: str) -> bool:
        return any(head.name == branch_name for head in repo.heads)

    def _default_base(self, repo: git.Repo) -> str:
        """origin's HEAD, then main, then master, then HEAD."""
        try:
            ref = repo.git.symbolic_ref("--short", "refs/remotes/origin/HEAD")
            if ref:
                return ref
        except git.exc.GitCommandError:
            pass
        for candidate in BASE_BRANCH_CANDIDATES:
            if self._branch_exists(repo, candidate):
                return candidate
        return "HEAD"

    @staticmethod
    def _rebase_in_progress(wt_repo: git.Repo, target: str) -> bool:
        for state_dir in ("rebase-merge", "rebase-apply"):
            try:
                git_path = wt_repo.git.rev_parse("--git-path", state_dir)
            except git.exc.GitCommandError:
                continue
            # Relative to the worktree unless git hands back an absolute path
            if (Path(target) / git_path).exists():
                return True
        return False

    @staticmethod
    def _abort(repo: git.Repo, command: str, *args: str) -> None:
        try:
            getattr(repo.git, command)(*args)
        except git.exc.GitCommandError as e:
            logger.warning(f"Could not clean up after failed {command} in {repo.working_dir}: {_stderr(e)}")

    def _main_branch(self, repo: git.Repo) -> str:
        """Local name of the branch sessions merge into."""
        base = self._default_base(repo)
        if base.startswith("origin/"):
            return base[len("origin/"):]
        if base == "HEAD":
            raise GitCommandFailed("merge", repo.working_dir, "no main or master branch")
        return base

    def _delete_branch_if_pushed(self, repo: git.Repo, branch_name: str) -> bool:
        """Delete branch_name unless it carries commits nothing else has."""
        try:
            base = repo.git.rev_parse("--abbrev-ref", f"{branch_name}@{{upstream}}")
        except git.exc.GitCommandError:
            base = self._default_base(repo)

        try:
            ahead = int(repo.git.rev_list("--count", f"{base}..{branch_name}"))
        except (git.exc.GitCommandError, ValueError) as e:
            logger.warning(f"Could not compare {branch_name} with {base}, keeping branch: {e}")
            return False

        if ahead > 0:
            logger.info(f"Keeping branch {branch_name}: {ahead} commits ahead of {base}")
            return False

        try:
            repo.git.branch("-D", branch_name)
        except git.exc.GitCommandError as e:
            raise GitCommandFailed("branch delete", branch_name, _stderr(e)) from e
        logger.info(f"Deleted branch {branch_name}")
        return True

    def _exclude_worktree_root(self, repo: git.Repo, project: str, root: Path) -> None:
        """Keep an in-project worktree root out of the main checkout's status."""
        try:
            relative = root.resolve().relative_to(project)
        except ValueError:
            return  # Root lives outside the project

        exclude_file = Path(repo.git_dir) / "info" / "exclude"
        pattern = f"/{relative.as_posix()}/"
        existing = exclude_file.read_text().splitlines() if exclude_file.exists() else []
        if pattern in existing:
            return
        exclude_file.parent.mkdir(parents=True, exist_ok=True)
        with open(exclude_file, "a") as f:
            f.write(f"{pattern}\n")

    def _parse_worktree_list(self, repo: git.Repo, project: str,
                             config: Optional[Config] = None) -> List[WorktreeInfo]:
        """Parse ``git worktree list --porcelain``.

        Format, one block per worktree separated by blank lines:
            worktree /path/to/worktree
            HEAD commit_sha
            branch refs/heads/branch-name   (or "detached")
        """
        try:
            output = repo.git.worktree("list", "--porcelain")
        except git.exc.GitCommandError as e:
            raise GitCommandFailed("worktree list", project, _stderr(e)) from e

        root = (config or self.config_store.get()).worktree_root(project).resolve()
        worktree_list: List[WorktreeInfo] = []
        current: Dict[str, Any] = {}

        def flush():
            path = current.get("path")
            if not path:
                return
            session_name = None
            try:
                relative = Path(path).resolve().relative_to(root)
                if relative.parts:
                    session_name = relative.parts[0]
            except ValueError:
                pass
            worktree_list.append(
                WorktreeInfo(
                    path=path,
                    branch_name=current.get("branch", ""),
                    commit_sha=current.get("HEAD", ""),
                    is_main=not worktree_list,  # First entry is always the main one
                    is_orphaned=not os.path.exists(path),
                    session_name=session_name,
                )
            )

        for line in output.split("\n"):
            line = line.strip()
            if not line:
                flush()
                current = {}
                continue

            if line.startswith("worktree "):
                current["path"] = line.split(" ", 1)[1]
            elif line.startswith("HEAD "):
                current["HEAD"] = line.split(" ", 1)[1]
            elif line.startswith("branch "):
                branch_ref = line.split(" ", 1)[1]
                if branch_ref.startswith("refs/heads/"):
                    current["branch"] = branch_ref[len("refs/heads/"):]
                else:
                    current["branch"] = ""
            elif line.startswith("detached"):
                current["branch"] = ""

        # Last entry has no trailing blank line
        flush()

        logger.debug(f"Found {len(worktree_list)} worktrees")
        return worktree_list
