"""Immediate verification: wait for each unit's own response."""

import asyncio
import logging

from ..exceptions import ElementTimeoutError, InteractionError
from ..models import ImageUnit, Outcome, OutcomeRecord, ProcessReport, VerificationMode
from ..utils import pause
from .base import PlatformAdapter

logger = logging.getLogger(__name__)


class ImmediateVerificationAdapter(PlatformAdapter):
    verification = VerificationMode.IMMEDIATE

    async def _submit(self, unit: ImageUnit, prompt: str) -> ProcessReport:
        page = self.page
        wait = self.settings.wait

        await self.upload_image(unit.path)
        await self.enter_prompt(prompt)

        blocks_before, _ = await page.count_in_last(self.selectors.response_block, self.selectors.artifact_in_response)

        gate = f"{self.selectors.submit_control}:not([disabled])"
        try:
            submit = await page.wait_for(gate, visible=True, timeout=self.settings.browser.action_timeout)
        except ElementTimeoutError as e:
            raise InteractionError(f"Submit control not enabled for {unit.name}: {e}") from e
        await submit.click()
        logger.info(f"Submitted {unit.name}; waiting for response")

        await self._wait_for_generation()

        if not await self._wait_for_new_response(blocks_before):
            logger.warning(f"No response for {unit.name} within {wait.response_timeout:g}s")
            await self.capture_diagnostics(f"no_response_{unit.name}")
            return ProcessReport(submitted=True, resolved=OutcomeRecord(unit, Outcome.FAILURE))

        await pause(wait.render_settle_delay, "response render")
        _, artifacts = await page.count_in_last(self.selectors.response_block, self.selectors.artifact_in_response)
        outcome = Outcome.SUCCESS if artifacts > 0 else Outcome.FAILURE
        logger.info(f"{unit.name}: {artifacts} artifact(s) -> {outcome.value}")
        return ProcessReport(submitted=True, resolved=OutcomeRecord(unit, outcome))

    async def _wait_for_generation(self) -> None:
        wait = self.settings.wait
        marker = self.selectors.loading_marker
        if not marker:
            await pause(wait.response_settle_delay, "response start")
            return

        try:
            await self.page.wait_for(marker, visible=True, timeout=wait.loading_appear_timeout)
        except ElementTimeoutError:
            logger.debug("Loading marker never appeared; response may already be done")
            return
        try:
            await self.page.wait_until_hidden(marker, timeout=wait.response_timeout)
        except ElementTimeoutError:
            logger.warning(f"Loading marker still visible after {wait.response_timeout:g}s")

    async def _wait_for_new_response(self, blocks_before: int) -> bool:
        """Poll until a response block newer than `blocks_before` exists."""
        page = self.page
        wait = self.settings.wait
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait.response_timeout
        while True:
            blocks, _ = await page.count_in_last(self.selectors.response_block, self.selectors.artifact_in_response)
            if blocks > blocks_before:
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(wait.poll_interval, remaining))
