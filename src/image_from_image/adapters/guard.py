"""Obstruction detection (bot challenges, interstitials) before each unit."""

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from ..exceptions import BrowserError, ElementTimeoutError, NotReadyError, SessionLostError
from ..utils import pause

if TYPE_CHECKING:
    from ..config import AppSettings
    from ..driver import PageSession
    from ..surfaces import SurfaceSelectors

logger = logging.getLogger(__name__)

Diagnostics = Callable[[str], Awaitable[object]]


class ObstructionGuard:
    """Race obstruction markers against ready markers and pause for a human.

    The guard never clears an obstruction itself. When one shows up it takes a
    screenshot, waits `manual_intervention_timeout` for someone to solve it in
    the visible browser, then insists that the ready markers are back.
    """

    def __init__(self, selectors: "SurfaceSelectors", settings: "AppSettings"):
        self.selectors = selectors
        self.settings = settings

    async def check(self, page: "PageSession", capture: Diagnostics | None = None) -> bool:
        """Check once. Returns True when an obstruction was detected and waited out.

        Raises:
            NotReadyError: if the ready markers are still missing after the pause.
            SessionLostError: if the browser went away during the check.
        """
        markers = self.selectors.obstruction_markers
        ready = self.selectors.ready_selectors
        if not markers:
            return False

        wait = self.settings.wait
        winner = await self._race(page, markers, ready, wait.obstruction_check_timeout)
        if winner != "obstruction":
            return False

        logger.warning(f"Obstruction detected ({', '.join(markers)}). Pausing {wait.manual_intervention_timeout:g}s for manual intervention")
        if capture is not None:
            await capture("obstruction")
        await pause(wait.manual_intervention_timeout, "manual intervention")

        if ready:
            try:
                await page.wait_for_all(ready, visible=True, timeout=wait.post_obstruction_ready_timeout)
            except ElementTimeoutError as e:
                raise NotReadyError(f"Surface not ready after obstruction pause: {e}") from e
            except SessionLostError:
                raise
            except BrowserError as e:
                raise NotReadyError(f"Readiness re-check failed after obstruction pause: {e}") from e
        logger.info("Obstruction cleared, continuing")
        return True

    async def _race(self, page: "PageSession", markers: list[str], ready: list[str], timeout: float) -> str | None:
        """Return 'obstruction', 'ready' or None when neither appears in time."""
        tasks: dict[asyncio.Task, str] = {
            asyncio.create_task(page.wait_for(markers, timeout=timeout)): "obstruction",
        }
        if ready:
            tasks[asyncio.create_task(page.wait_for_all(ready, visible=True, timeout=timeout))] = "ready"

        pending = set(tasks)
        winner: str | None = None
        try:
            while pending and winner is None:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                # Obstruction wins a tie
                for task in sorted(done, key=lambda t: tasks[t] != "obstruction"):
                    exc = task.exception()
                    if exc is None:
                        winner = tasks[task]
                        break
                    if isinstance(exc, SessionLostError):
                        raise exc
                    if not isinstance(exc, ElementTimeoutError):
                        logger.debug(f"{tasks[task]} check failed: {exc}")
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        return winner

    async def delay_if_not_ready(self, page: "PageSession") -> bool:
        """Apply the conservative fallback delay when ready markers are slow.

        Returns True when the delay was applied.
        """
        ready = self.selectors.ready_selectors
        if not ready:
            return False
        try:
            await page.wait_for_all(ready, visible=True, timeout=self.settings.wait.fallback_check_timeout)
            return False
        except SessionLostError:
            raise
        except BrowserError as e:
            delay = self.settings.get_fallback_delay()
            logger.info(f"Ready markers not visible yet ({e}); waiting {delay:g}s")
            await pause(delay, "ready fallback")
            return True
