"""Per-file success/failure counters."""

from typing import TYPE_CHECKING

from .base import CounterStore
from .exif import ExifCounterStore
from .sqlite import SqliteCounterStore

if TYPE_CHECKING:
    from ..config import AppSettings


def create_counter_store(settings: "AppSettings") -> CounterStore:
    """Build the configured backend."""
    counter = settings.counter
    if counter.backend == "sqlite":
        return SqliteCounterStore(settings.get_database_path())
    return ExifCounterStore(app_name=counter.app_name, success_key=counter.success_key, failed_key=counter.failed_key)


__all__ = [
    "CounterStore",
    "ExifCounterStore",
    "SqliteCounterStore",
    "create_counter_store",
]
