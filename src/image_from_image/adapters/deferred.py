"""Deferred verification: unit N's result is read while submitting unit N+1."""

import logging
from typing import TYPE_CHECKING

from ..exceptions import BrowserError, ElementTimeoutError, GateTimeoutError, SessionLostError
from ..models import ImageUnit, Outcome, OutcomeRecord, ProcessReport, VerificationMode
from .base import PlatformAdapter

if TYPE_CHECKING:
    from ..config import AppSettings
    from ..surfaces import Surface

logger = logging.getLogger(__name__)


class DeferredVerificationAdapter(PlatformAdapter):
    """For surfaces that render slowly but gate the next submission.

    Waiting for each artifact would cost minutes per unit. Instead the submit
    control is used as a gate: once it is enabled again for the next unit, the
    previous response is complete and its artifacts can be counted.
    """

    verification = VerificationMode.DEFERRED

    def __init__(self, surface: "Surface", settings: "AppSettings"):
        super().__init__(surface, settings)
        self._last_submitted: ImageUnit | None = None

    async def _submit(self, unit: ImageUnit, prompt: str) -> ProcessReport:
        await self.upload_image(unit.path)
        await self.enter_prompt(prompt)

        gate = f"{self.selectors.submit_control}:not([disabled])"
        gate_timeout = self.settings.wait.gate_timeout
        logger.info(f"Waiting up to {gate_timeout:g}s for the submit gate")
        try:
            submit = await self.page.wait_for(gate, visible=True, timeout=gate_timeout)
        except ElementTimeoutError as e:
            raise GateTimeoutError(f"Submit control stayed disabled for {gate_timeout:g}s ({unit.name})") from e

        resolved = None
        if self._last_submitted is not None:
            resolved = OutcomeRecord(self._last_submitted, await self._verify_previous())

        await submit.click()
        logger.info(f"Submitted {unit.name}; result will be checked with the next unit")
        self._last_submitted = unit
        return ProcessReport(submitted=True, resolved=resolved, awaiting_verification=True)

    async def _verify_previous(self) -> Outcome:
        previous = self._last_submitted
        try:
            _, artifacts = await self.page.count_in_last(self.selectors.response_block, self.selectors.artifact_in_response)
        except SessionLostError:
            raise
        except BrowserError as e:
            logger.warning(f"Could not count artifacts for {previous.name}: {e}")
            artifacts = 0

        outcome = Outcome.SUCCESS if artifacts > 0 else Outcome.FAILURE
        logger.info(f"Previous unit {previous.name}: {artifacts} artifact(s) -> {outcome.value}")
        return outcome

    def discard_pending(self) -> None:
        self._last_submitted = None
