"""Logging setup and per-session log context."""

from .logging import (
    bind_session_context,
    clear_session_context,
    get_session_logger,
    setup_structured_logging,
)

__all__ = [
    "bind_session_context",
    "clear_session_context",
    "get_session_logger",
    "setup_structured_logging",
]
