"""Tests for sandbox policy resolution"""
import pytest

from git_session_keeper.config import Config, ConfigStore
from git_session_keeper.exceptions import InvalidSandboxOverride, OwnershipConflict
from git_session_keeper.models.session import SandboxOverride, Session
from git_session_keeper.services.handoff_bridge import HandoffBridge, SurfaceHolder
from git_session_keeper.services.sandbox_policy import (
    SANDBOX_OFF_DIRECTIVE,
    SANDBOX_ON_DIRECTIVE,
    SandboxPolicyResolver,
    effective_sandbox,
)


def make_session(session_id="s1", override=SandboxOverride.GLOBAL, attached=True):
    return Session(
        id=session_id,
        name=session_id,
        worktree_path=f"/tmp/project/.worktrees/{session_id}",
        branch_name=session_id,
        project_path="/tmp/project",
        terminal_surface=f"term-{session_id}" if attached else None,
        sandbox_override=override,
    )


@pytest.fixture
def settings():
    return ConfigStore(Config(sandbox_enabled=False))


@pytest.fixture
def bridge(settings, terminal):
    return HandoffBridge(settings, terminal)


@pytest.fixture
def resolver(settings, bridge):
    return SandboxPolicyResolver(settings, bridge)


class TestEffectiveSandbox:
    """Test the resolution table."""

    @pytest.mark.parametrize("global_enabled,override,expected", [
        (False, SandboxOverride.GLOBAL, False),
        (True, SandboxOverride.GLOBAL, True),
        (False, SandboxOverride.ENABLED, True),
        (True, SandboxOverride.ENABLED, True),
        (False, SandboxOverride.DISABLED, False),
        (True, SandboxOverride.DISABLED, False),
        (True, None, True),
        (True, "disabled", False),
    ])
    def test_resolution(self, global_enabled, override, expected):
        assert effective_sandbox(global_enabled, override) is expected

    def test_unknown_override(self):
        with pytest.raises(InvalidSandboxOverride):
            effective_sandbox(True, "sometimes")


class TestSandboxPolicyResolver:
    """Test applying the resolved setting."""

    def test_resolve_reads_global_setting(self, resolver, settings):
        session = make_session()
        assert resolver.resolve(session) is False
        settings.update(sandbox_enabled=True)
        assert resolver.resolve(session) is True

    def test_apply_sends_directive(self, resolver, terminal):
        assert resolver.apply_sandbox(make_session(), True) is True
        assert resolver.apply_sandbox(make_session(), False) is True
        assert terminal.directives_for("s1") == [SANDBOX_ON_DIRECTIVE, SANDBOX_OFF_DIRECTIVE]

    def test_apply_without_terminal(self, resolver, terminal):
        assert resolver.apply_sandbox(make_session(attached=False), True) is False
        assert terminal.directives == []

    def test_apply_refused_while_delegated(self, resolver, bridge, terminal):
        session = make_session()
        bridge.token_for(session.project_path, session.branch_name).force(SurfaceHolder.WEB)

        with pytest.raises(OwnershipConflict):
            resolver.apply_sandbox(session, True)
        assert terminal.directives == []

    def test_global_change_skips_explicit_overrides(self, resolver, terminal):
        sessions = [
            make_session("follows"),
            make_session("pinned-on", SandboxOverride.ENABLED),
            make_session("pinned-off", SandboxOverride.DISABLED),
            make_session("detached", attached=False),
        ]
        applied = resolver.on_global_change(False, True, sessions)

        assert applied == ["follows"]
        assert terminal.directives == [("follows", SANDBOX_ON_DIRECTIVE)]

    def test_global_change_noop_when_unchanged(self, resolver, terminal):
        assert resolver.on_global_change(True, True, [make_session()]) == []
        assert terminal.directives == []

    def test_global_change_continues_past_conflicts(self, resolver, bridge, terminal):
        blocked = make_session("blocked")
        bridge.token_for(blocked.project_path, blocked.branch_name).force(SurfaceHolder.WEB)

        applied = resolver.on_global_change(True, False, [blocked, make_session("free")])
        assert applied == ["free"]
        assert terminal.directives == [("free", SANDBOX_OFF_DIRECTIVE)]
