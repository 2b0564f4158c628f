"""Platform adapter contract and the UI steps shared by every surface."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from ..exceptions import (
    BrowserError,
    ElementTimeoutError,
    InteractionError,
    NotReadyError,
    SessionLostError,
    SubmissionError,
)
from ..models import ImageUnit, ProcessReport, VerificationMode
from ..utils import pause, unique_artifact_path
from .guard import ObstructionGuard

if TYPE_CHECKING:
    from ..config import AppSettings
    from ..driver import PageSession
    from ..surfaces import Surface

logger = logging.getLogger(__name__)


class PlatformAdapter(ABC):
    """Drives one unit's interaction with a surface.

    Subclasses implement `_submit`; `process` wraps it with the obstruction
    guard, the readiness check and error classification so every variant
    reports failures the same way:

    - NotReadyError: required elements never appeared
    - GateTimeoutError: the submit gate never reopened (retryable)
    - InteractionError: anything else that went wrong with the page
    - SessionLostError: the browser is gone; passed through untouched
    """

    verification: VerificationMode

    def __init__(self, surface: "Surface", settings: "AppSettings"):
        self.surface = surface
        self.selectors = surface.selectors
        self.settings = settings
        self.guard = ObstructionGuard(surface.selectors, settings)
        self._page: "PageSession | None" = None

    @property
    def page(self) -> "PageSession":
        if self._page is None:
            raise RuntimeError(f"{type(self).__name__} used before initialize()")
        return self._page

    async def initialize(self, page: "PageSession") -> None:
        """Bind to a live page session."""
        self._page = page
        logger.debug(f"{type(self).__name__} bound to {self.surface.key}")

    async def process(self, unit: ImageUnit, prompt: str) -> ProcessReport:
        """Submit one unit and report whatever outcome is known now."""
        logger.info(f"[{self.surface.key}] Processing {unit.name} (#{unit.index})")
        try:
            await self._prepare()
            return await self._submit(unit, prompt)
        except (SubmissionError, SessionLostError):
            raise
        except BrowserError as e:
            raise InteractionError(f"{unit.name}: {e}") from e

    async def _prepare(self) -> None:
        await self.guard.check(self.page, capture=self.capture_diagnostics)
        await self.guard.delay_if_not_ready(self.page)
        await self.ensure_ready()

    async def ensure_ready(self) -> None:
        """Confirm every ready marker is visible.

        Raises:
            NotReadyError: when they do not appear within `ready_timeout`.
        """
        ready = self.selectors.ready_selectors
        if not ready:
            return
        try:
            await self.page.wait_for_all(ready, visible=True, timeout=self.settings.wait.ready_timeout)
        except ElementTimeoutError as e:
            raise NotReadyError(f"Surface '{self.surface.key}' not ready: {e}") from e

    @abstractmethod
    async def _submit(self, unit: ImageUnit, prompt: str) -> ProcessReport:
        """Upload, type and submit. Called only once the surface is ready."""

    async def upload_image(self, path: Path) -> None:
        """Attach `path` and wait for the surface to show its preview."""
        page = self.page
        timeout = self.settings.browser.action_timeout

        if self.selectors.upload_trigger:
            trigger = await page.wait_for(self.selectors.upload_trigger, visible=True, timeout=timeout)
            await trigger.click()
            await pause(self.settings.wait.menu_settle_delay, "upload menu")

        file_input = await page.wait_for(self.selectors.upload_input, timeout=timeout)
        await file_input.upload_file(path)
        logger.debug(f"File set on input: {path.name}")

        preview_timeout = timeout + self.settings.wait.preview_extra_timeout
        await page.wait_for(self.selectors.upload_confirm, visible=True, timeout=preview_timeout)
        await pause(self.settings.wait.upload_settle_delay, "upload preview")
        logger.info(f"Image uploaded: {path.name}")

    async def enter_prompt(self, prompt: str) -> None:
        field = await self.page.wait_for(self.selectors.prompt_field, visible=True, timeout=self.settings.browser.action_timeout)
        await field.type_text(prompt)
        logger.debug("Prompt entered")

    async def recover(self) -> None:
        """Reload the page; used before a retry."""
        await self.page.reload(self.settings.browser.navigation_timeout)

    def discard_pending(self) -> None:
        """Forget any unit this adapter still means to verify."""

    async def capture_diagnostics(self, prefix: str) -> Path | None:
        """Save a screenshot to the output directory. Never raises."""
        if self._page is None or self._page.is_closed:
            return None
        try:
            path = unique_artifact_path(self.settings.get_output_dir(), f"{prefix}_{self.surface.key}")
            await self._page.screenshot(path)
        except Exception as e:
            logger.warning(f"Could not save screenshot for {prefix}: {e}")
            return None
        logger.info(f"Screenshot saved: {path}")
        return path
