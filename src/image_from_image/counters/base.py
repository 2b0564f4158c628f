"""Counter store interface."""

import logging
from abc import ABC, abstractmethod

from ..models import CounterRecord, Outcome

logger = logging.getLogger(__name__)


class CounterStore(ABC):
    """Persisted per-file success/failure tally.

    Implementations raise CounterStoreError for any read or write failure.
    """

    @abstractmethod
    async def read(self, file_id: str) -> CounterRecord | None:
        """Return the stored record, or None when the file has none yet."""

    @abstractmethod
    async def write(self, file_id: str, record: CounterRecord) -> None:
        """Replace the stored record."""

    async def increment(self, file_id: str, outcome: Outcome) -> CounterRecord:
        """Read, bump the counter for `outcome`, write back."""
        current = await self.read(file_id) or CounterRecord()
        updated = current.incremented(outcome)
        await self.write(file_id, updated)
        logger.debug(f"Counter for {file_id}: {updated.success_count} ok / {updated.failed_count} failed")
        return updated

    async def close(self) -> None:
        """Release resources."""
