"""Structured logging with per-session context using structlog and contextvars."""

import logging
import sys

import structlog

_configured = False

# Dependencies that flood INFO with CDP chatter
_NOISY_LOGGERS = ("browser_use", "cdp_use", "websockets", "httpx", "httpcore", "asyncio", "PIL")


def setup_structured_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog and stdlib logging once per process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Render events as JSON instead of console key=value lines
    """
    global _configured
    if _configured:
        return

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # Inject session context
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def bind_session_context(label: str, profile: str | None = None) -> None:
    """Bind pair/session context for all subsequent logs in this async context.

    Args:
        label: Human-readable session label (input directory name)
        profile: Browser profile directory name, if any
    """
    structlog.contextvars.bind_contextvars(session=label, profile=profile)


def clear_session_context() -> None:
    """Clear session context after the session ends."""
    structlog.contextvars.clear_contextvars()


def get_session_logger(name: str = "image_from_image") -> structlog.stdlib.BoundLogger:
    """Get a structlog logger carrying the bound session context."""
    return structlog.get_logger(name)
