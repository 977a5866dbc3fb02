"""
git-session-keeper - Session and worktree lifecycle orchestration for parallel coding agents
"""

from .__version__ import __version__
from .config import Config, ConfigStore
from .core import SessionOrchestrator

__all__ = ["Config", "ConfigStore", "SessionOrchestrator", "__version__"]
