"""Tests for session status transitions"""
import threading

import pytest

from git_session_keeper.models.process import ProcessMetrics
from git_session_keeper.models.session import Session, SessionStatus
from git_session_keeper.models.worktree import WorktreeStatus
from git_session_keeper.services.session_state_machine import (
    TRANSITIONS,
    SessionSignal,
    SessionStateMachine,
    next_status,
)


def make_session(status=SessionStatus.IDLE, **fields):
    return Session(
        id="s1",
        name="Session 1",
        worktree_path="/tmp/project/.worktrees/s1",
        branch_name="s1",
        project_path="/tmp/project",
        status=status,
        **fields,
    )


class TestTransitionTable:
    """Test every (status, signal) pair."""

    @pytest.mark.parametrize("status", list(SessionStatus))
    @pytest.mark.parametrize("signal", list(SessionSignal))
    def test_pairs(self, status, signal):
        expected = TRANSITIONS.get((status, signal), status)
        assert next_status(status, signal) == expected

    def test_documented_transitions(self):
        assert next_status(SessionStatus.IDLE, SessionSignal.ACTIVITY) == SessionStatus.RUNNING
        assert next_status(SessionStatus.RUNNING, SessionSignal.AWAITING_INPUT) == SessionStatus.WAITING
        assert next_status(SessionStatus.RUNNING, SessionSignal.PROCESS_EXITED) == SessionStatus.ERROR
        assert next_status(SessionStatus.WAITING, SessionSignal.PROCESS_EXITED) == SessionStatus.ERROR
        assert next_status(SessionStatus.ERROR, SessionSignal.RESET) == SessionStatus.IDLE

    def test_waiting_does_not_resume_on_activity(self):
        assert next_status(SessionStatus.WAITING, SessionSignal.ACTIVITY) == SessionStatus.WAITING

    def test_error_only_leaves_on_reset_or_stop(self):
        for signal in (SessionSignal.ACTIVITY, SessionSignal.AWAITING_INPUT, SessionSignal.PROCESS_EXITED):
            assert next_status(SessionStatus.ERROR, signal) == SessionStatus.ERROR

    @pytest.mark.parametrize("status", list(SessionStatus))
    def test_stop_always_lands_idle(self, status):
        assert next_status(status, SessionSignal.STOP) == SessionStatus.IDLE


class TestApply:
    """Test committing signals."""

    def test_transition_updates_activity_time(self):
        machine = SessionStateMachine(make_session(last_activity_at=1.0))
        session = machine.apply(SessionSignal.ACTIVITY, now=50.0)

        assert session.status == SessionStatus.RUNNING
        assert session.last_activity_at == 50.0

    def test_noop_keeps_record(self):
        original = make_session()
        machine = SessionStateMachine(original)
        assert machine.apply(SessionSignal.PROCESS_EXITED) is not original
        assert machine.session.status == SessionStatus.IDLE
        assert machine.session.last_activity_at == original.last_activity_at

    def test_reset_commits_fields_with_transition(self):
        machine = SessionStateMachine(make_session(SessionStatus.ERROR, git_retired=True, last_warning="gone"))
        session = machine.reset(git_retired=False, last_warning=None)

        assert session.status == SessionStatus.IDLE
        assert session.git_retired is False
        assert session.last_warning is None

    def test_update_rejects_managed_fields(self):
        machine = SessionStateMachine(make_session())
        with pytest.raises(ValueError, match="status"):
            machine.update(status=SessionStatus.RUNNING)
        with pytest.raises(ValueError, match="last_activity_at"):
            machine.apply(SessionSignal.ACTIVITY, last_activity_at=3.0)

    def test_listeners_only_on_change(self):
        machine = SessionStateMachine(make_session())
        seen = []
        machine.on_transition(lambda old, new: seen.append((old.status, new.status)))

        machine.apply(SessionSignal.AWAITING_INPUT)
        machine.apply(SessionSignal.ACTIVITY)
        machine.update(name="renamed")

        assert seen == [(SessionStatus.IDLE, SessionStatus.RUNNING)]

    def test_failing_listener_is_contained(self):
        machine = SessionStateMachine(make_session())

        def broken(old, new):
            raise RuntimeError("boom")

        machine.on_transition(broken)
        assert machine.apply(SessionSignal.ACTIVITY).status == SessionStatus.RUNNING


class TestCommitPoll:
    """Test folding a poll tick into one commit."""

    def test_git_and_metrics_committed(self):
        machine = SessionStateMachine(make_session())
        status = WorktreeStatus(branch_name="s1", staged_files=("a",), uncommitted_files=("b", "c"), ahead=2)
        metrics = ProcessMetrics(pid=42, running=True, cpu_percent=30.0, memory_mb=100.0)

        session = machine.commit_poll(git_status=status, metrics=metrics)

        assert session.staged_count == 1
        assert session.uncommitted_count == 2
        assert session.ahead == 2
        assert session.is_clean is False
        assert session.cpu_percent == 30.0
        assert session.memory_mb == 100.0
        assert session.pid == 42
        assert session.status == SessionStatus.IDLE

    def test_missing_reads_keep_previous_values(self):
        machine = SessionStateMachine(make_session(uncommitted_count=3, cpu_percent=9.0))
        session = machine.commit_poll(warning="slow read")

        assert session.uncommitted_count == 3
        assert session.cpu_percent == 9.0
        assert session.last_warning == "slow read"

    def test_warning_cleared_by_next_tick(self):
        machine = SessionStateMachine(make_session(last_warning="old"))
        assert machine.commit_poll().last_warning is None

    def test_new_output_starts_running(self):
        machine = SessionStateMachine(make_session())
        session = machine.commit_poll(activity_at=100.0, now=101.0)

        assert session.status == SessionStatus.RUNNING
        assert session.last_output_at == 100.0

    def test_same_output_is_not_activity(self):
        machine = SessionStateMachine(make_session(SessionStatus.RUNNING, last_output_at=100.0))
        session = machine.commit_poll(activity_at=100.0, now=101.0)
        assert session.status == SessionStatus.RUNNING

    def test_waiting_requires_quiescence(self):
        machine = SessionStateMachine(make_session(SessionStatus.RUNNING, last_output_at=100.0))

        session = machine.commit_poll(awaiting_input=True, quiescence_seconds=5.0, now=103.0)
        assert session.status == SessionStatus.RUNNING

        session = machine.commit_poll(awaiting_input=True, quiescence_seconds=5.0, now=106.0)
        assert session.status == SessionStatus.WAITING

    def test_activity_beats_awaiting(self):
        machine = SessionStateMachine(make_session())
        session = machine.commit_poll(activity_at=100.0, awaiting_input=True, now=200.0)
        assert session.status == SessionStatus.RUNNING

    def test_exit_beats_everything_and_freezes_metrics(self):
        machine = SessionStateMachine(make_session(SessionStatus.RUNNING, cpu_percent=50.0, memory_mb=80.0))
        metrics = ProcessMetrics(pid=42, running=True, cpu_percent=0.0, memory_mb=0.0)

        session = machine.commit_poll(metrics=metrics, activity_at=500.0, awaiting_input=True,
                                      process_exited=True)

        assert session.status == SessionStatus.ERROR
        assert session.cpu_percent == 50.0
        assert session.memory_mb == 80.0

    def test_retire_flag(self):
        machine = SessionStateMachine(make_session())
        session = machine.commit_poll(git_retired=True, warning="Worktree is missing")
        assert session.git_retired is True

    def test_concurrent_commits_never_tear(self):
        machine = SessionStateMachine(make_session())
        errors = []

        def writer(n):
            for i in range(200):
                status = WorktreeStatus(branch_name="s1", ahead=n, behind=n)
                session = machine.commit_poll(git_status=status)
                if session.ahead != session.behind:
                    errors.append(session)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert machine.session.ahead == machine.session.behind
