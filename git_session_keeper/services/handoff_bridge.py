"""Handoff and teleport of a session's interactive surface.

A logical unit of work (project path + branch) has exactly one interactive
surface at a time: the local terminal or the remote web session. Which one
is recorded in an OwnershipToken; every transfer is a non-blocking exchange
on that token, and every directive this package sends to a terminal goes
through ``HandoffBridge.send_directive`` so it can be refused while the web
side owns the unit.
"""

import threading
from dataclasses import replace
from enum import Enum
from typing import Callable, Collection, Dict, List, Optional, Tuple, TypeVar

from git_session_keeper.config import ConfigStore
from git_session_keeper.exceptions import HandoffInterrupted, OwnershipConflict, SurfaceUnavailable
from git_session_keeper.interfaces import TerminalSurface
from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.session import Session
from git_session_keeper.models.web_session import (
    DEFAULT_WEB_DESCRIPTION,
    WebSession,
    WebSessionOrigin,
    WebSessionStatus,
    next_web_session_id,
)

logger = get_logger(__name__)

HANDOFF_DIRECTIVE = "&\n"
TELEPORT_DIRECTIVE = "/teleport\n"

T = TypeVar("T")


class SurfaceHolder(Enum):
    """Which surface currently owns a unit of work."""
    UNOWNED = "unowned"
    LOCAL = "local"
    WEB = "web"


class OwnershipToken:
    """Single-writer token for one unit of work.

    ``transfer`` never waits: if another transfer holds the exchange, or the
    current holder is not one the caller expects, it raises OwnershipConflict.
    """

    def __init__(self, unit: str, holder: SurfaceHolder = SurfaceHolder.UNOWNED):
        self.unit = unit
        self._holder = holder
        self._exchange = threading.Lock()

    @property
    def holder(self) -> SurfaceHolder:
        return self._holder

    @property
    def in_transfer(self) -> bool:
        return self._exchange.locked()

    def transfer(self, expected: Collection[SurfaceHolder], to: SurfaceHolder,
                 action: Callable[[], T]) -> T:
        """Run action and move the token to ``to`` if it succeeds.

        On any failure the prior holder stays in place, except for
        HandoffInterrupted which leaves the token UNOWNED.
        """
        if not self._exchange.acquire(blocking=False):
            raise OwnershipConflict(self.unit, self._holder.value, "another transfer is in progress")
        try:
            prior = self._holder
            if prior not in expected:
                raise OwnershipConflict(self.unit, prior.value)
            try:
                result = action()
            except HandoffInterrupted:
                self._holder = SurfaceHolder.UNOWNED
                raise
            self._holder = to
            logger.debug(f"Ownership of {self.unit}: {prior.value} -> {to.value}")
            return result
        finally:
            self._exchange.release()

    def force(self, holder: SurfaceHolder) -> None:
        """Set the holder outside a transfer (restoring persisted state)."""
        with self._exchange:
            self._holder = holder


def unit_key(project_path: str, branch_name: str) -> Tuple[str, str]:
    return project_path, branch_name


class HandoffBridge:
    """Moves sessions between the local terminal and the web surface."""

    def __init__(self, config_store: ConfigStore, surface: Optional[TerminalSurface]):
        self.config_store = config_store
        self.surface = surface
        self._tokens: Dict[Tuple[str, str], OwnershipToken] = {}
        self._tokens_lock = threading.Lock()
        self._issued_ids: List[str] = []

    def token_for(self, project_path: str, branch_name: str) -> OwnershipToken:
        key = unit_key(project_path, branch_name)
        with self._tokens_lock:
            token = self._tokens.get(key)
            if token is None:
                token = OwnershipToken(f"{project_path}@{branch_name}")
                self._tokens[key] = token
            return token

    def holder(self, session: Session) -> SurfaceHolder:
        with self._tokens_lock:
            token = self._tokens.get(unit_key(session.project_path, session.branch_name))
        return token.holder if token else SurfaceHolder.UNOWNED

    def restore(self, session: Session) -> None:
        """Re-establish web ownership for a persisted delegated session."""
        if session.surface_delegated:
            self.token_for(session.project_path, session.branch_name).force(SurfaceHolder.WEB)

    def release(self, session: Session) -> None:
        """Forget the token of a destroyed session.

        A unit owned by the web outlives its local session so the web
        session can still be teleported into a new one.
        """
        key = unit_key(session.project_path, session.branch_name)
        with self._tokens_lock:
            token = self._tokens.get(key)
            if token is not None and token.holder != SurfaceHolder.WEB:
                del self._tokens[key]

    def send_directive(self, session: Session, text: str) -> None:
        """Send text to the session's local terminal.

        Raises:
            OwnershipConflict: the web side owns the unit or a transfer is running
            SurfaceUnavailable: no local terminal is attached
        """
        with self._tokens_lock:
            token = self._tokens.get(unit_key(session.project_path, session.branch_name))
        if token is not None and (token.holder == SurfaceHolder.WEB or token.in_transfer):
            raise OwnershipConflict(token.unit, token.holder.value, "local input is blocked")
        self._deliver(session, text)

    def _deliver(self, session: Session, text: str) -> None:
        if self.surface is None or session.terminal_surface is None:
            raise SurfaceUnavailable(session.id)
        self.surface.send_directive(session.id, text)

    def _has_live_process(self, session: Session) -> bool:
        return (
            self.surface is not None
            and session.terminal_surface is not None
            and self.surface.process_id(session.id) is not None
        )

    def handoff_to_web(
        self,
        session: Session,
        description: Optional[str] = None,
        commit: Optional[Callable[[WebSession], None]] = None,
        web_session_id: Optional[str] = None,
    ) -> WebSession:
        """Hand the session's interactive surface to a new web session.

        Args:
            session: Local session with a live terminal
            description: Human label for the web session
            commit: Called with the new WebSession inside the exchange;
                if it raises, ownership stays local
            web_session_id: Id to use, the next free ``web-<n>`` otherwise

        Raises:
            SurfaceUnavailable, OwnershipConflict, HandoffInterrupted
        """
        if not self._has_live_process(session):
            raise SurfaceUnavailable(session.id)

        token = self.token_for(session.project_path, session.branch_name)
        web_id = web_session_id or next_web_session_id(self._issued_ids)

        def exchange() -> WebSession:
            self._deliver(session, HANDOFF_DIRECTIVE)
            if not self._has_live_process(session):
                raise HandoffInterrupted(token.unit)
            web = WebSession(
                id=web_id,
                description=description or DEFAULT_WEB_DESCRIPTION,
                url=self.config_store.get().web_base_url,
                origin=WebSessionOrigin.HANDOFF,
                origin_branch=session.branch_name,
                origin_project_path=session.project_path,
                origin_worktree_path=session.worktree_path,
                origin_session_id=session.id,
                status=WebSessionStatus.ACTIVE,
            )
            if commit is not None:
                commit(web)
            return web

        web = token.transfer((SurfaceHolder.UNOWNED, SurfaceHolder.LOCAL), SurfaceHolder.WEB, exchange)
        self._issued_ids.append(web.id)
        logger.info(f"Handed off session {session.name} ({session.branch_name}) to {web.id}")
        return web

    def teleport_from_web(
        self,
        web_session: WebSession,
        target: Session,
        commit: Optional[Callable[[WebSession], None]] = None,
    ) -> WebSession:
        """Bring a web session back to the target's local terminal.

        Returns:
            The web session marked completed

        Raises:
            OwnershipConflict: the unit is not owned as expected, or busy
        """
        if web_session.is_handoff:
            token = self.token_for(web_session.origin_project_path or target.project_path,
                                   web_session.origin_branch)
            expected = (SurfaceHolder.WEB,)
        else:
            token = self.token_for(target.project_path, target.branch_name)
            expected = (SurfaceHolder.UNOWNED, SurfaceHolder.LOCAL)

        def exchange() -> WebSession:
            if self.surface is not None and target.terminal_surface is not None:
                self._deliver(target, TELEPORT_DIRECTIVE)
            completed = replace(web_session, status=WebSessionStatus.COMPLETED)
            if commit is not None:
                commit(completed)
            return completed

        completed = token.transfer(expected, SurfaceHolder.LOCAL, exchange)
        logger.info(f"Teleported {web_session.id} back to session {target.name}")
        return completed
