"""Core functionality for git-session-keeper"""

import os
import re
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, TypeVar, Union

from git_session_keeper.config import Config, ConfigStore, load_project_config
from git_session_keeper.exceptions import (
    ArchiveNotFound,
    DirtyWorktree,
    InvalidSessionName,
    OwnershipConflict,
    SessionNotFound,
    SurfaceUnavailable,
    TeleportBranchMismatch,
    TeleportTargetRequired,
    WebSessionNotFound,
    WorktreeMissing,
)
from git_session_keeper.interfaces import ProjectStateStore, SettingsStore, TerminalSurface
from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.session import ProjectState, SandboxOverride, Session, SessionStatus, new_session_id
from git_session_keeper.models.web_session import (
    DEFAULT_WEB_DESCRIPTION,
    WebSession,
    WebSessionOrigin,
    WebSessionStatus,
    next_web_session_id,
)
from git_session_keeper.models.worktree import ArchivedWorktree, WorktreeInfo
from git_session_keeper.services.git.status_reader import GitStatusReader
from git_session_keeper.services.git.worktrees import WorktreeService
from git_session_keeper.services.handoff_bridge import HandoffBridge, SurfaceHolder
from git_session_keeper.services.persistence import JsonProjectStateStore
from git_session_keeper.services.resource_sampler import ResourceSampler
from git_session_keeper.services.sandbox_policy import SandboxPolicyResolver
from git_session_keeper.services.session_state_machine import SessionStateMachine
from git_session_keeper.services.status_poller import PollReport, StatusPoller

logger = get_logger(__name__)

Notifier = Callable[[Session], None]
T = TypeVar("T")


@dataclass
class _Project:
    """In-memory state of one opened project."""
    path: str
    machines: Dict[str, SessionStateMachine] = field(default_factory=dict)  # creation order
    web_sessions: Dict[str, WebSession] = field(default_factory=dict)
    focused_session_id: Optional[str] = None
    last_polled_at: Optional[float] = None
    lock: threading.RLock = field(default_factory=threading.RLock)


def branch_for_session_name(name: str, prefix: str = "") -> str:
    """Default branch for a session called name ("Fix login" -> "Fix-login")."""
    slug = re.sub(r"\s+", "-", name.strip())
    slug = re.sub(r"[^a-zA-Z0-9/_-]", "", slug)
    return f"{prefix}{slug}"


class SessionOrchestrator:
    """Main entry point: sessions, their worktrees, polling, sandbox and handoff."""

    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        surface: Optional[TerminalSurface] = None,
        store: Optional[ProjectStateStore] = None,
        settings: Optional[SettingsStore] = None,
        worktree_service: Optional[WorktreeService] = None,
        reader: Optional[GitStatusReader] = None,
        sampler: Optional[ResourceSampler] = None,
        notifier: Optional[Notifier] = None,
    ):
        """Initialize the orchestrator.

        Args:
            config_store: Shared configuration; a default one is created if omitted
            surface: Terminal collaborator; without it sessions cannot attach
            store: Persistence collaborator, JSON files under ~/.git-session-keeper by default
            settings: Source of the global sandbox flag, the config store by default
            worktree_service: Worktree manager (tests inject their own)
            reader: Git status reader used by the poller and dirty checks
            sampler: Resource sampler used by the poller
            notifier: Called with a session that starts waiting or fails
        """
        self.config_store = config_store or ConfigStore()
        self.surface = surface
        self.store = store if store is not None else JsonProjectStateStore()
        self.settings = settings or self.config_store
        self.worktrees = worktree_service or WorktreeService(self.config_store)
        self.reader = reader or GitStatusReader()
        self.sampler = sampler or ResourceSampler()
        self.notifier = notifier

        self.bridge = HandoffBridge(self.config_store, surface)
        self.sandbox = SandboxPolicyResolver(self.settings, self.bridge)
        self.poller = StatusPoller(
            self.config_store,
            self.live_session_machines,
            surface,
            reader=self.reader,
            sampler=self.sampler,
            on_tick=self._record_poll,
        )

        self._projects: Dict[str, _Project] = {}
        self._index: Dict[str, str] = {}  # session id -> project path
        self._lock = threading.RLock()

        self.settings.on_config_change(self._on_config_change)

    # Project registry

    @staticmethod
    def _resolve(path: str) -> str:
        return str(Path(path).expanduser().resolve())

    def _project_config(self, project_path: str) -> Config:
        base = self.config_store.get()
        try:
            return load_project_config(project_path, base)
        except ValueError as e:
            logger.warning(f"Ignoring project config for {project_path}: {e}")
            return base

    def _ensure_project(self, project_path: str) -> _Project:
        """Return the in-memory project, loading persisted state on first use."""
        with self._lock:
            project = self._projects.get(project_path)
            if project is not None:
                return project

            project = _Project(path=project_path)
            state = self.store.load_project_state(project_path)
            if state is not None:
                for session in state.sessions:
                    machine = self._new_machine(session)
                    project.machines[session.id] = machine
                    self._index[session.id] = project_path
                    self.bridge.restore(session)
                project.web_sessions = {web.id: web for web in state.web_sessions}
                project.focused_session_id = state.focused_session_id
                project.last_polled_at = state.last_polled_at
                logger.info(f"Restored {len(state.sessions)} sessions for {project_path}")

            self._projects[project_path] = project
            return project

    def _new_machine(self, session: Session) -> SessionStateMachine:
        machine = SessionStateMachine(session)
        machine.on_transition(self._on_transition)
        return machine

    def _lookup(self, session_id: str) -> Tuple[_Project, SessionStateMachine]:
        with self._lock:
            project_path = self._index.get(session_id)
            project = self._projects.get(project_path) if project_path else None
        if project is None:
            raise SessionNotFound(session_id)
        with project.lock:
            machine = project.machines.get(session_id)
        if machine is None:
            raise SessionNotFound(session_id)
        return project, machine

    def _find_web(self, web_session_id: str) -> Tuple[_Project, WebSession]:
        with self._lock:
            projects = list(self._projects.values())
        for project in projects:
            with project.lock:
                web = project.web_sessions.get(web_session_id)
            if web is not None:
                return project, web
        raise WebSessionNotFound(web_session_id)

    def _all_web_ids(self) -> List[str]:
        with self._lock:
            projects = list(self._projects.values())
        ids = []
        for project in projects:
            with project.lock:
                ids.extend(project.web_sessions)
        return ids

    def _snapshot(self, project: _Project) -> ProjectState:
        with project.lock:
            return ProjectState(
                project_path=project.path,
                sessions=tuple(m.session for m in project.machines.values()),
                web_sessions=tuple(project.web_sessions.values()),
                focused_session_id=project.focused_session_id,
                config=self._project_config(project.path),
                last_polled_at=project.last_polled_at,
            )

    def _save(self, project: _Project) -> None:
        """Persist the project; returns once the store has acknowledged the write."""
        with project.lock:
            self.store.save_project_state(self._snapshot(project))

    # Projects

    def open_project(self, project_path: str) -> List[WorktreeInfo]:
        """Load a project's sessions and reconcile them with the worktrees on disk.

        Sessions whose worktree vanished keep their record with git reads
        retired; worktrees under the session root without a session are
        returned so the caller can adopt or remove them.
        """
        project_path = self._resolve(project_path)
        config = self._project_config(project_path)
        # Raises NotAGitRepository before any state is created
        self.worktrees.list_worktrees(project_path, config)

        project = self._ensure_project(project_path)
        with project.lock:
            machines = list(project.machines.values())
        for machine in machines:
            session = machine.session
            if not os.path.isdir(session.worktree_path) and not session.git_retired:
                machine.update(git_retired=True, last_warning=str(WorktreeMissing(session.worktree_path)))
                logger.warning(f"Session {session.name} lost its worktree {session.worktree_path}")

        return self.worktrees.find_orphans(
            project_path, [m.session.worktree_path for m in machines], config
        )

    def get_project_state(self, project_path: str) -> ProjectState:
        return self._snapshot(self._ensure_project(self._resolve(project_path)))

    def live_session_machines(self) -> List[SessionStateMachine]:
        """Copy of every live session's state machine, across projects."""
        with self._lock:
            projects = list(self._projects.values())
        machines = []
        for project in projects:
            with project.lock:
                machines.extend(project.machines.values())
        return machines

    # Sessions

    def create_session(self, project_path: str, name: str, branch_name: Optional[str] = None) -> Session:
        """Create a session and its worktree.

        Raises:
            InvalidSessionName, InvalidBranchName, NotAGitRepository,
            BranchInUse, WorktreeExists, GitCommandFailed
        """
        if not name or not name.strip():
            raise InvalidSessionName(name or "")
        name = name.strip()
        project_path = self._resolve(project_path)
        config = self._project_config(project_path)
        branch_name = branch_name or branch_for_session_name(name, config.default_branch_prefix)

        project = self._ensure_project(project_path)
        in_use = self._branches_in_use(project)
        info = self.worktrees.create_worktree(project_path, branch_name, in_use, config=config)

        session = Session(
            id=new_session_id(),
            name=name,
            worktree_path=info.path,
            branch_name=branch_name,
            project_path=project_path,
        )

        def rollback() -> None:
            self.worktrees.remove_worktree(project_path, info.path, force=True)

        self._register(project, session, rollback)
        logger.info(f"Created session {name} on {branch_name} at {info.path}")
        return session

    def _branches_in_use(self, project: _Project) -> List[str]:
        with project.lock:
            return [m.session.branch_name for m in project.machines.values()]

    def _register(self, project: _Project, session: Session, rollback: Callable[[], object]) -> None:
        """Add a new session's record and save it; undo the worktree step if the save fails."""
        machine = self._new_machine(session)
        try:
            with project.lock:
                project.machines[session.id] = machine
                with self._lock:
                    self._index[session.id] = project.path
                self._save(project)
        except Exception:
            with project.lock:
                project.machines.pop(session.id, None)
                with self._lock:
                    self._index.pop(session.id, None)
            try:
                rollback()
            except Exception as e:
                logger.error(f"Could not roll back worktree {session.worktree_path}: {e}")
            raise

    def destroy_session(self, session_id: str, force: bool = False) -> None:
        """Remove a session together with its worktree.

        The record is removed and saved first, then the worktree; if the
        worktree cannot be removed the record is put back.

        Raises:
            SessionNotFound: unknown id, including a second destroy of the same id
            DirtyWorktree: the worktree has changes and force is False
        """
        project, machine = self._lookup(session_id)
        session = machine.session

        if not force and not session.git_retired:
            try:
                status = self.reader.read_status(session.worktree_path)
            except WorktreeMissing:
                status = None
            if status is not None and not status.is_clean:
                raise DirtyWorktree(session.worktree_path, status.staged_count, status.uncommitted_count)

        self._retire(project, machine, lambda: self.worktrees.remove_worktree(
            session.project_path, session.worktree_path, force=True
        ))
        logger.info(f"Destroyed session {session.name}")

    def _retire(self, project: _Project, machine: SessionStateMachine, action: Callable[[], T]) -> T:
        """Drop a session's record, save, then run action on its worktree.

        If the save or the action fails, the record goes back in its old
        position with focus restored.
        """
        session_id = machine.session_id
        with project.lock:
            if project.machines.get(session_id) is not machine:
                raise SessionNotFound(session_id)
            order = list(project.machines)
            focused = project.focused_session_id
            del project.machines[session_id]
            if project.focused_session_id == session_id:
                project.focused_session_id = None
            with self._lock:
                self._index.pop(session_id, None)

            try:
                self._save(project)
                result = action()
            except Exception:
                self._reinsert(project, machine, order, focused)
                raise

        session = machine.session
        self.bridge.release(session)
        if session.pid is not None:
            self.sampler.forget(session.pid)
        return result

    def _reinsert(self, project: _Project, machine: SessionStateMachine, order: List[str],
                  focused: Optional[str]) -> None:
        with project.lock:
            machines = dict(project.machines)
            machines[machine.session_id] = machine
            project.machines = {sid: machines[sid] for sid in order if sid in machines}
            project.focused_session_id = focused
            with self._lock:
                self._index[machine.session_id] = project.path
            try:
                self._save(project)
            except Exception as e:
                logger.error(f"Could not re-save session {machine.session.name} after failed destroy: {e}")

    def attach_surface(self, session_id: str) -> Session:
        """Bind a terminal to the session and apply its sandbox setting."""
        _, machine = self._lookup(session_id)
        session = self._attach(machine)
        if self.sandbox.resolve(session):
            self._push_sandbox(session, True)
        return session

    def _attach(self, machine: SessionStateMachine) -> Session:
        if self.surface is None:
            raise SurfaceUnavailable(machine.session_id)
        reference = self.surface.attach_surface(machine.session_id)
        return machine.update(terminal_surface=reference)

    def reset_session(self, session_id: str) -> Session:
        """Leave the error state and retry git reads."""
        _, machine = self._lookup(session_id)
        if machine.session.status != SessionStatus.ERROR:
            return machine.session
        return machine.reset(git_retired=False, last_warning=None)

    def stop_session(self, session_id: str) -> Session:
        """Record that the user stopped the session's process."""
        _, machine = self._lookup(session_id)
        return machine.stop()

    def rename_session(self, session_id: str, name: str) -> Session:
        if not name or not name.strip():
            raise InvalidSessionName(name or "")
        project, machine = self._lookup(session_id)
        session = machine.update(name=name.strip())
        self._save(project)
        return session

    def focus_session(self, project_path: str, session_id: Optional[str]) -> ProjectState:
        project = self._ensure_project(self._resolve(project_path))
        with project.lock:
            if session_id is not None and session_id not in project.machines:
                raise SessionNotFound(session_id)
            project.focused_session_id = session_id
            self._save(project)
        return self._snapshot(project)

    # Worktree maintenance

    def sync_session(self, session_id: str) -> str:
        """Rebase the session's branch onto the project's default base.

        Returns:
            The base the branch was rebased onto

        Raises:
            SessionNotFound, WorktreeMissing, RebaseInProgress, DirtyWorktree,
            RebaseConflict, GitCommandFailed
        """
        _, machine = self._lookup(session_id)
        session = machine.session
        return self.worktrees.sync_worktree(session.project_path, session.worktree_path)

    def merge_session(self, session_id: str, squash: bool = False, message: Optional[str] = None) -> str:
        """Merge the session's branch into the project's main branch.

        Returns:
            Sha of the main branch after the merge

        Raises:
            SessionNotFound, WorktreeMissing, DirtyWorktree, MergeConflict,
            GitCommandFailed
        """
        _, machine = self._lookup(session_id)
        session = machine.session
        return self.worktrees.merge_worktree(session.project_path, session.worktree_path,
                                             squash=squash, message=message)

    def archive_session(self, session_id: str, force: bool = False) -> ArchivedWorktree:
        """Archive the session's worktree and retire the session.

        The branch is kept and the archive remembers the session name, so
        restore_session brings back an equivalent session.

        Raises:
            SessionNotFound, OwnershipConflict, DirtyWorktree, WorktreeMissing,
            GitCommandFailed
        """
        project, machine = self._lookup(session_id)
        session = machine.session
        if session.surface_delegated:
            raise OwnershipConflict(session.branch_name, "web", "teleport the session back before archiving it")

        config = self._project_config(project.path)
        archived = self._retire(project, machine, lambda: self.worktrees.archive_worktree(
            project.path, session.worktree_path, force=force, session_name=session.name, config=config
        ))
        logger.info(f"Archived session {session.name} as {archived.archive_id}")
        return archived

    def restore_session(self, project_path: str, archive_id: str, name: Optional[str] = None) -> Session:
        """Restore an archived worktree and give it a session again.

        Raises:
            ArchiveNotFound, InvalidSessionName, BranchInUse, WorktreeExists,
            NotAGitRepository, GitCommandFailed
        """
        if name is not None and not name.strip():
            raise InvalidSessionName(name)
        project_path = self._resolve(project_path)
        config = self._project_config(project_path)
        project = self._ensure_project(project_path)

        archived = next(
            (a for a in self.worktrees.list_archives(project_path, config) if a.archive_id == archive_id), None
        )
        if archived is None:
            raise ArchiveNotFound(archive_id)

        in_use = self._branches_in_use(project)
        info = self.worktrees.restore_worktree(project_path, archive_id, in_use, config=config)
        session = Session(
            id=new_session_id(),
            name=(name or archived.session_name or info.session_name or info.branch_name).strip(),
            worktree_path=info.path,
            branch_name=info.branch_name,
            project_path=project_path,
        )

        def rollback() -> None:
            self.worktrees.archive_worktree(project_path, info.path, force=True,
                                            session_name=session.name, config=config)

        self._register(project, session, rollback)
        logger.info(f"Restored session {session.name} from {archive_id}")
        return session

    def list_archived_sessions(self, project_path: str) -> List[ArchivedWorktree]:
        project_path = self._resolve(project_path)
        return self.worktrees.list_archives(project_path, self._project_config(project_path))

    def delete_archived_session(self, project_path: str, archive_id: str) -> None:
        """Permanently delete an archive. Its branch is kept."""
        project_path = self._resolve(project_path)
        self.worktrees.delete_archive(project_path, archive_id, self._project_config(project_path))

    # Sandbox

    def set_sandbox_override(self, session_id: str, override: Union[SandboxOverride, str, None]) -> Session:
        """Store the override and push the resolved setting to the process.

        Raises:
            InvalidSandboxOverride: for unknown override values
        """
        override = SandboxOverride.coerce(override)
        project, machine = self._lookup(session_id)
        session = machine.update(sandbox_override=override)
        self._save(project)

        if session.terminal_surface is not None:
            self._push_sandbox(session, self.sandbox.resolve(session))
        return session

    def _web_owned(self, session: Session) -> bool:
        # A destroyed delegated session leaves its branch owned by the web
        return session.surface_delegated or self.bridge.holder(session) == SurfaceHolder.WEB

    def _push_sandbox(self, session: Session, enabled: bool) -> None:
        if self._web_owned(session):
            logger.info(f"Session {session.name} is owned by the web, sandbox applies on teleport")
            return
        self.sandbox.apply_sandbox(session, enabled)

    def effective_sandbox_for(self, session_id: str) -> bool:
        _, machine = self._lookup(session_id)
        return self.sandbox.resolve(machine.session)

    def _on_config_change(self, old: Config, new: Config) -> None:
        if old.sandbox_enabled == new.sandbox_enabled:
            return
        sessions = [
            m.session for m in self.live_session_machines()
            if not self._web_owned(m.session)
        ]
        self.sandbox.on_global_change(old.sandbox_enabled, new.sandbox_enabled, sessions)

    # Handoff / teleport

    def handoff_to_web(self, session_id: str, description: Optional[str] = None) -> WebSession:
        """Move the session's interactive surface to a new web session.

        Raises:
            SurfaceUnavailable, OwnershipConflict, HandoffInterrupted
        """
        project, machine = self._lookup(session_id)

        def commit(web: WebSession) -> None:
            with project.lock:
                previous = machine.session
                project.web_sessions[web.id] = web
                machine.update(surface_delegated=True, web_session_id=web.id)
                try:
                    self._save(project)
                except Exception:
                    project.web_sessions.pop(web.id, None)
                    machine.update(surface_delegated=previous.surface_delegated,
                                   web_session_id=previous.web_session_id)
                    raise

        return self.bridge.handoff_to_web(
            machine.session,
            description,
            commit=commit,
            web_session_id=next_web_session_id(self._all_web_ids()),
        )

    def teleport_from_web(self, web_session_id: str, target_session_id: Optional[str] = None) -> Session:
        """Resume a web session locally.

        Without a target, the live session on the web session's origin branch
        is used, or a new session is created on that branch. A handed-off web
        session only resumes into a session on its origin branch.

        Raises:
            WebSessionNotFound, SessionNotFound, TeleportTargetRequired,
            TeleportBranchMismatch, OwnershipConflict
        """
        web_project, web = self._find_web(web_session_id)

        if target_session_id is not None:
            target_project, target_machine = self._lookup(target_session_id)
        elif web.is_handoff:
            target_project, target_machine = self._teleport_target(web)
        else:
            raise TeleportTargetRequired(web_session_id)

        target = target_machine.session
        if web.is_handoff and (target.branch_name != web.origin_branch
                               or target.project_path != web.origin_project_path):
            raise TeleportBranchMismatch(web.id, web.origin_branch, target.branch_name)
        if target.surface_delegated and target.web_session_id != web.id:
            raise OwnershipConflict(target.branch_name, "web", f"session is delegated to {target.web_session_id}")

        if self.surface is not None and target.terminal_surface is None:
            # No sandbox directive yet, the web side still owns the unit
            target = self._attach(target_machine)

        with web_project.lock:
            # Any other session still marked as delegated to this web session
            stale = [
                m for m in web_project.machines.values()
                if m is not target_machine and m.session.web_session_id == web.id and m.session.surface_delegated
            ]

        def commit(completed: WebSession) -> None:
            with web_project.lock, target_project.lock:
                previous = {m.session_id: m.session for m in [target_machine] + stale}
                web_project.web_sessions[completed.id] = completed
                target_machine.update(surface_delegated=False, web_session_id=completed.id)
                for machine in stale:
                    machine.update(surface_delegated=False)
                try:
                    self._save(web_project)
                    if target_project is not web_project:
                        self._save(target_project)
                except Exception:
                    web_project.web_sessions[web.id] = web
                    for machine in [target_machine] + stale:
                        before = previous[machine.session_id]
                        machine.update(surface_delegated=before.surface_delegated,
                                       web_session_id=before.web_session_id)
                    raise

        self.bridge.teleport_from_web(web, target, commit=commit)

        session = target_machine.session
        if session.terminal_surface is not None and self.sandbox.resolve(session):
            self.sandbox.apply_sandbox(session, True)
        return target_machine.session

    def _teleport_target(self, web: WebSession) -> Tuple[_Project, SessionStateMachine]:
        """Live session on the web session's origin branch, created if needed."""
        project_path = web.origin_project_path
        project = self._ensure_project(project_path)
        with project.lock:
            candidates = [m for m in project.machines.values() if m.session.branch_name == web.origin_branch]
        for machine in candidates:
            if machine.session_id == web.origin_session_id:
                return project, machine
        if candidates:
            return project, candidates[0]

        logger.info(f"No session on {web.origin_branch}, creating one for {web.id}")
        session = self.create_session(project_path, web.origin_branch, branch_name=web.origin_branch)
        return self._lookup(session.id)

    # Web sessions

    def create_web_session(self, project_path: str, description: Optional[str] = None,
                           url: Optional[str] = None) -> WebSession:
        """Record a web session started on the web, not handed off."""
        project = self._ensure_project(self._resolve(project_path))
        web = WebSession(
            id=next_web_session_id(self._all_web_ids()),
            description=description or DEFAULT_WEB_DESCRIPTION,
            url=url or self.config_store.get().web_base_url,
            origin=WebSessionOrigin.MANUAL,
        )
        with project.lock:
            project.web_sessions[web.id] = web
            self._save(project)
        logger.info(f"Created web session {web.id}")
        return web

    def update_web_session(self, web_session_id: str, description: Optional[str] = None,
                           status: Union[WebSessionStatus, str, None] = None) -> WebSession:
        project, web = self._find_web(web_session_id)
        changes = {}
        if description is not None:
            changes["description"] = description or DEFAULT_WEB_DESCRIPTION
        if status is not None:
            changes["status"] = WebSessionStatus(status)
        if not changes:
            return web

        with project.lock:
            updated = replace(web, **changes)
            project.web_sessions[web.id] = updated
            self._save(project)
        return updated

    def delete_web_session(self, web_session_id: str) -> None:
        """Forget a web session.

        Raises:
            OwnershipConflict: an active handoff still owns its local session
        """
        project, web = self._find_web(web_session_id)
        if web.is_handoff and web.status == WebSessionStatus.ACTIVE:
            raise OwnershipConflict(web.origin_branch, "web", "teleport the session back before deleting it")
        with project.lock:
            project.web_sessions.pop(web.id, None)
            self._save(project)
        logger.info(f"Deleted web session {web.id}")

    def list_web_sessions(self, project_path: Optional[str] = None) -> List[WebSession]:
        if project_path is not None:
            return list(self.get_project_state(project_path).web_sessions)
        with self._lock:
            projects = list(self._projects.values())
        webs = []
        for project in projects:
            with project.lock:
                webs.extend(project.web_sessions.values())
        return webs

    # Polling

    def start_polling(self) -> None:
        self.poller.start()

    def stop_polling(self, grace_period: Optional[float] = None) -> bool:
        return self.poller.stop(grace_period)

    def poll_once(self) -> PollReport:
        return self.poller.run_once()

    def _record_poll(self, report: PollReport) -> None:
        with self._lock:
            projects = list(self._projects.values())
        for project in projects:
            with project.lock:
                project.last_polled_at = report.polled_at

    def _on_transition(self, old: Session, new: Session) -> None:
        logger.info(f"Session {new.name}: {old.status.value} -> {new.status.value}")
        if self.notifier is None or new.status not in (SessionStatus.WAITING, SessionStatus.ERROR):
            return
        if not self._project_config(new.project_path).notifications_enabled:
            return
        self.notifier(new)
