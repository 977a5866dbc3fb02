"""Status formatting utilities."""

from typing import Optional

from git_session_keeper.constants import STATUS_COLORS, STATUS_DISPLAY, WEB_STATUS_COLORS
from git_session_keeper.models.session import SessionStatus
from git_session_keeper.models.web_session import WebSessionStatus


def format_status(status: SessionStatus) -> str:
    """
    Format session status as display text.

    Args:
        status: Session status enum value

    Returns:
        Display text for status
    """
    return STATUS_DISPLAY.get(status.value, status.value)


def get_status_style(status: SessionStatus) -> Optional[str]:
    """Rich style for a session row, None for the default color."""
    return STATUS_COLORS.get(status.value)


def get_web_status_style(status: WebSessionStatus) -> Optional[str]:
    return WEB_STATUS_COLORS.get(status.value)
