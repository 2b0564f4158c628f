"""Browser driving primitives."""

from .session import PageElement, PageSession, join_selectors

__all__ = [
    "PageElement",
    "PageSession",
    "join_selectors",
]
