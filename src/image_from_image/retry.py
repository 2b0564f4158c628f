"""Single bounded retry for stalled submissions."""

import logging
from typing import Awaitable, Callable, TypeVar

from .exceptions import BrowserError, GateTimeoutError, InteractionError, SessionLostError
from .utils import pause

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retry an attempt after a page reload, only when the submit gate stalled.

    Every other failure is terminal for the unit and propagates on the first
    attempt. A failing reload is reported as InteractionError.
    """

    def __init__(self, max_retries: int = 1, stabilization_delay: float = 3.0):
        self.max_retries = max_retries
        self.stabilization_delay = stabilization_delay

    async def run(
        self,
        attempt: Callable[[], Awaitable[T]],
        recover: Callable[[], Awaitable[None]],
        label: str = "unit",
    ) -> T:
        retries = 0
        while True:
            try:
                return await attempt()
            except GateTimeoutError as e:
                if retries >= self.max_retries:
                    logger.error(f"{label}: gate timeout persisted after {retries} retry(s)")
                    raise
                retries += 1
                logger.warning(f"{label}: {e}. Reloading and retrying ({retries}/{self.max_retries})")

            try:
                await recover()
            except SessionLostError:
                raise
            except BrowserError as e:
                raise InteractionError(f"{label}: reload before retry failed: {e}") from e
            await pause(self.stabilization_delay, "post-reload stabilization")
