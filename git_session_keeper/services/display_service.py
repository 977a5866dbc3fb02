"""Display and formatting service for project session state"""
from typing import Optional

from rich.console import Console
from rich.table import Table

from git_session_keeper.constants import COLUMNS, LEGEND_TEXT, WEB_COLUMNS
from git_session_keeper.formatters import (
    format_age,
    format_changes,
    format_cpu,
    format_date,
    format_memory,
    format_notes,
    format_sandbox,
    format_session_name,
    format_status,
    format_sync,
    get_status_style,
    get_web_status_style,
)
from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.session import ProjectState, SessionStatus
from git_session_keeper.services.sandbox_policy import effective_sandbox

logger = get_logger(__name__)


class DisplayService:
    """Renders ProjectState snapshots for a host presentation layer."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose

    def build_session_table(self, state: ProjectState) -> Table:
        """Table of the project's sessions, one row per session in creation order."""
        table = Table(title=state.project_path)

        for col in COLUMNS:
            table.add_column(col.label, min_width=col.width or None)

        for session in state.sessions:
            sandboxed = effective_sandbox(state.config.sandbox_enabled, session.sandbox_override)

            # Match COLUMNS order: Session, Branch, Status, Changes, Sync, CPU, Memory, Sandbox, Notes
            table.add_row(
                format_session_name(session.name, session.id == state.focused_session_id),
                session.branch_name,
                format_status(session.status),
                format_changes(session),
                format_sync(session.ahead, session.behind),
                format_cpu(session.cpu_percent),
                format_memory(session.memory_mb),
                format_sandbox(sandboxed, session.sandbox_override),
                format_notes(session),
                style=get_status_style(session.status),
            )

        return table

    def build_web_session_table(self, state: ProjectState) -> Table:
        table = Table(title="Web sessions")
        for col in WEB_COLUMNS:
            table.add_column(col.label, min_width=col.width or None)

        for web in state.web_sessions:
            table.add_row(
                web.id,
                web.description,
                web.origin.value,
                web.origin_branch or "",
                web.status.value,
                format_date(web.created_at),
                style=get_web_status_style(web.status),
            )
        return table

    def display_project_state(self, state: ProjectState, show_summary: bool = False) -> None:
        """Print the session table, web sessions and an optional summary."""
        if not state.sessions:
            self.console.print("No sessions")
        else:
            self.console.print(self.build_session_table(state))

        if state.web_sessions:
            self.console.print(self.build_web_session_table(state))

        if not show_summary:
            return

        self.console.print(LEGEND_TEXT)

        counts = {status: 0 for status in SessionStatus}
        for session in state.sessions:
            counts[session.status] += 1

        self.console.print("Summary:")
        self.console.print(f"Total sessions: {len(state.sessions)}")
        for status in SessionStatus:
            self.console.print(f"{format_status(status).capitalize()}: {counts[status]}")
        self.console.print(f"Last polled: {format_age(state.last_polled_at)} ago"
                           if state.last_polled_at else "Last polled: never")
