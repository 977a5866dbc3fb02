"""Core orchestration for git-session-keeper."""

from .orchestrator import SessionOrchestrator, branch_for_session_name

__all__ = ["SessionOrchestrator", "branch_for_session_name"]
