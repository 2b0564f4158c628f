"""Sequential submission of one batch through one adapter."""

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .exceptions import CounterStoreError, SessionLostError, SubmissionError
from .models import ImageUnit, Outcome, OutcomeRecord, ProcessReport, RunSummary
from .observability import get_session_logger
from .retry import RetryPolicy
from .utils import pause

if TYPE_CHECKING:
    from .adapters import PlatformAdapter
    from .counters import CounterStore

logger = logging.getLogger(__name__)


class SubmissionPipeline:
    """Drive an ordered list of units through a single adapter.

    Keeps the one piece of cross-unit state deferred surfaces need: the unit
    that was submitted but not yet verified (`pending`). It is resolved when
    the adapter reports it, forced to FAILURE when a later unit fails, and
    flushed as FAILURE when the batch ends.

    Usage:
        pipeline = SubmissionPipeline(adapter, store, prompt="...", pacing_delay=5)
        summary = await pipeline.run(units)
    """

    def __init__(
        self,
        adapter: "PlatformAdapter",
        counter_store: "CounterStore",
        prompt: str,
        pacing_delay: float = 0.0,
        skip_if_created: bool = True,
        retry_policy: RetryPolicy | None = None,
    ):
        self.adapter = adapter
        self.counter_store = counter_store
        self.prompt = prompt
        self.pacing_delay = pacing_delay
        self.skip_if_created = skip_if_created
        self.retry_policy = retry_policy or RetryPolicy()
        self.summary = RunSummary()
        self.pending: ImageUnit | None = None
        self._events = get_session_logger(__name__)

    async def run(self, units: Sequence[ImageUnit]) -> RunSummary:
        total = len(units)
        logger.info(f"Starting batch of {total} unit(s)")
        try:
            for position, unit in enumerate(units, start=1):
                if await self._should_skip(unit):
                    self.summary.skipped += 1
                    logger.info(f"Skipping {unit.name} ({position}/{total}): already created")
                    continue

                self.summary.processed += 1
                logger.info(f"--- {unit.name} ({position}/{total}) ---")
                await self._process_unit(unit)

                if position < total:
                    await pause(self.pacing_delay, "pacing")
        except SessionLostError:
            logger.error("Browser session lost; abandoning the rest of this batch")
            await self._flush_pending("session lost")
            raise

        await self._flush_pending("batch end")
        logger.info(f"Batch finished: {self.summary.as_dict()}")
        return self.summary

    async def _should_skip(self, unit: ImageUnit) -> bool:
        if not self.skip_if_created:
            return False
        try:
            record = await self.counter_store.read(unit.file_id)
        except CounterStoreError as e:
            logger.warning(f"Could not read counters for {unit.name}, processing anyway: {e}")
            return False
        return record is not None and record.success_count > 0

    async def _process_unit(self, unit: ImageUnit) -> None:
        try:
            report = await self.retry_policy.run(
                lambda: self.adapter.process(unit, self.prompt),
                self.adapter.recover,
                label=unit.name,
            )
        except SubmissionError as e:
            self.summary.submit_errors += 1
            logger.error(f"Failed to submit {unit.name}: {type(e).__name__}: {e}")
            await self.adapter.capture_diagnostics(f"error_{unit.name}")
            await self._fail_pending(f"later unit {unit.name} failed")
            await self._record(OutcomeRecord(unit, Outcome.FAILURE), reason=type(e).__name__)
            return

        await self._accept(unit, report)

    async def _accept(self, unit: ImageUnit, report: ProcessReport) -> None:
        resolved = report.resolved
        if resolved is not None:
            if self.pending is not None and resolved.unit == self.pending:
                self.pending = None
                await self._record(resolved, reason="verified with next unit")
            elif resolved.unit == unit:
                await self._record(resolved, reason="verified")
            else:
                logger.warning(f"Adapter resolved unexpected unit {resolved.unit.name}; ignoring")

        if not report.submitted:
            logger.warning(f"{unit.name} was not submitted")
            await self._record(OutcomeRecord(unit, Outcome.FAILURE), reason="not submitted")
            return

        if report.awaiting_verification:
            if self.pending is not None:
                # Adapter moved on without reporting the previous unit
                await self._fail_pending("superseded")
            self.pending = unit

    async def _fail_pending(self, reason: str) -> None:
        if self.pending is None:
            return
        unit, self.pending = self.pending, None
        self.adapter.discard_pending()
        await self._record(OutcomeRecord(unit, Outcome.FAILURE), reason=reason)

    async def _flush_pending(self, reason: str) -> None:
        if self.pending is not None:
            logger.info(f"No later unit to verify {self.pending.name}; recording it as failed")
        await self._fail_pending(reason)

    async def _record(self, record: OutcomeRecord, reason: str) -> None:
        if record.outcome == Outcome.UNDETERMINED:
            logger.warning(f"Outcome for {record.unit.name} undetermined; not recorded")
            return

        try:
            await self.counter_store.increment(record.unit.file_id, record.outcome)
        except CounterStoreError as e:
            self.summary.counter_errors += 1
            logger.error(f"Could not persist {record.outcome.value} for {record.unit.name}: {e}")
        else:
            if record.outcome == Outcome.SUCCESS:
                self.summary.success += 1
            else:
                self.summary.failed += 1

        self._events.info("unit_resolved", unit=record.unit.name, outcome=record.outcome.value, reason=reason)
