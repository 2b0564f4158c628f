"""Platform adapters: one per verification mode."""

from typing import TYPE_CHECKING

from ..models import VerificationMode
from .base import PlatformAdapter
from .deferred import DeferredVerificationAdapter
from .guard import ObstructionGuard
from .immediate import ImmediateVerificationAdapter

if TYPE_CHECKING:
    from ..config import AppSettings
    from ..surfaces import Surface

_ADAPTERS: dict[VerificationMode, type[PlatformAdapter]] = {
    VerificationMode.IMMEDIATE: ImmediateVerificationAdapter,
    VerificationMode.DEFERRED: DeferredVerificationAdapter,
}


def create_adapter(surface: "Surface", settings: "AppSettings") -> PlatformAdapter:
    """Build the adapter matching the surface's verification mode."""
    return _ADAPTERS[surface.verification](surface, settings)


__all__ = [
    "DeferredVerificationAdapter",
    "ImmediateVerificationAdapter",
    "ObstructionGuard",
    "PlatformAdapter",
    "create_adapter",
]
