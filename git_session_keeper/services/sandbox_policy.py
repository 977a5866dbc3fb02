"""Sandbox policy resolution for sessions."""

from typing import Iterable, List, Optional, Union

from git_session_keeper.exceptions import OwnershipConflict, SurfaceUnavailable
from git_session_keeper.interfaces import SettingsStore
from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.session import SandboxOverride, Session
from git_session_keeper.services.handoff_bridge import HandoffBridge

logger = get_logger(__name__)

SANDBOX_ON_DIRECTIVE = "/sandbox\n"
SANDBOX_OFF_DIRECTIVE = "/sandbox off\n"


def effective_sandbox(global_enabled: bool, override: Union[SandboxOverride, str, None]) -> bool:
    """Resolve whether a session runs sandboxed.

    ``enabled`` and ``disabled`` win; ``global`` (or no override) follows the
    global toggle.

    Raises:
        InvalidSandboxOverride: for strings outside the three variants
    """
    override = SandboxOverride.coerce(override)
    if override == SandboxOverride.ENABLED:
        return True
    if override == SandboxOverride.DISABLED:
        return False
    return bool(global_enabled)


class SandboxPolicyResolver:
    """Applies the effective sandbox setting to session processes.

    The override lives on the Session; the resolved boolean is never stored,
    so a global toggle change re-resolves every session still on ``global``.
    """

    def __init__(self, settings: SettingsStore, bridge: HandoffBridge):
        self.settings = settings
        self.bridge = bridge

    def resolve(self, session: Session, global_enabled: Optional[bool] = None) -> bool:
        if global_enabled is None:
            global_enabled = self.settings.get_global_sandbox_enabled()
        return effective_sandbox(global_enabled, session.sandbox_override)

    def apply_sandbox(self, session: Session, desired_enabled: bool) -> bool:
        """Send the sandbox directive to the session's process.

        Returns:
            False if the session has no terminal to send to

        Raises:
            OwnershipConflict: the session's surface is delegated to the web
        """
        if session.terminal_surface is None:
            logger.debug(f"Session {session.name} has no terminal, sandbox applies on attach")
            return False
        directive = SANDBOX_ON_DIRECTIVE if desired_enabled else SANDBOX_OFF_DIRECTIVE
        self.bridge.send_directive(session, directive)
        logger.info(f"Sandbox {'enabled' if desired_enabled else 'disabled'} for session {session.name}")
        return True

    def on_global_change(self, old_enabled: bool, new_enabled: bool,
                         sessions: Iterable[Session]) -> List[str]:
        """Re-apply the sandbox to sessions following the global toggle.

        Returns:
            Ids of the sessions a directive was sent to
        """
        if bool(old_enabled) == bool(new_enabled):
            return []

        applied = []
        for session in sessions:
            if session.sandbox_override != SandboxOverride.GLOBAL:
                continue
            try:
                if self.apply_sandbox(session, bool(new_enabled)):
                    applied.append(session.id)
            except (OwnershipConflict, SurfaceUnavailable) as e:
                logger.warning(f"Could not re-apply sandbox to session {session.name}: {e}")
        return applied
