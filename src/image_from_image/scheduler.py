"""Session scheduling: one pipeline per browser profile, bounded and isolated."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .adapters import PlatformAdapter, create_adapter
from .counters import CounterStore, create_counter_store
from .discovery import build_pairs, build_units, find_image_files, find_subdirectories
from .driver import PageSession
from .exceptions import ElementTimeoutError, SessionLostError
from .models import ImageUnit, PairAssignment, RunSummary
from .observability import bind_session_context, clear_session_context, get_session_logger
from .pipeline import SubmissionPipeline
from .retry import RetryPolicy
from .utils import pause

if TYPE_CHECKING:
    from .config import AppSettings
    from .surfaces import Surface

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Everything one pipeline run owns. Never shared between tasks."""

    label: str
    page: PageSession
    adapter: PlatformAdapter
    counter_store: CounterStore

    async def close(self) -> None:
        """Tear down the store and the browser. Errors are logged, not raised."""
        try:
            await self.counter_store.close()
        except Exception as e:
            logger.warning(f"[{self.label}] Error closing counter store: {e}")
        try:
            await self.page.close()
        except Exception as e:
            logger.warning(f"[{self.label}] Error closing browser: {e}")
        logger.info(f"[{self.label}] Session closed")


SessionFactory = Callable[["AppSettings", "Surface", Path | None, str], Awaitable[SessionContext]]


async def open_session(settings: "AppSettings", surface: "Surface", profile_dir: Path | None, label: str) -> SessionContext:
    """Launch a browser for `profile_dir`, load the surface and bind an adapter."""
    page = await PageSession.open(settings.browser, profile_dir, poll_interval=settings.wait.poll_interval)
    try:
        await page.navigate(surface.url, timeout=settings.browser.navigation_timeout)

        ready = surface.selectors.ready_selectors
        if ready:
            try:
                await page.wait_for_all(ready, visible=True, timeout=settings.wait.initial_ready_timeout)
                logger.info(f"[{label}] Surface '{surface.key}' is ready")
            except ElementTimeoutError as e:
                logger.warning(f"[{label}] Initial readiness check failed, continuing: {e}")
        else:
            await pause(settings.wait.initial_settle_delay, "initial page settle")

        adapter = create_adapter(surface, settings)
        await adapter.initialize(page)
        counter_store = create_counter_store(settings)
    except BaseException:
        await page.close()
        raise

    get_session_logger(__name__).info("session_opened", surface=surface.key, url=surface.url)
    return SessionContext(label=label, page=page, adapter=adapter, counter_store=counter_store)


class SessionScheduler:
    """Run pipelines in single or paired mode.

    Paired mode zips sorted input subdirectories with sorted profile
    subdirectories and runs each pair as its own task, at most
    `settings.run.concurrency` at a time. A failing pair is logged and
    contributes a zero summary; it never cancels its siblings.
    """

    def __init__(self, settings: "AppSettings", surface: "Surface", session_factory: SessionFactory | None = None):
        self.settings = settings
        self.surface = surface
        self.session_factory = session_factory or open_session
        self._active = 0
        self.max_active = 0

    async def run_single(self, input_path: str | Path, recurse: bool = False, profile_dir: str | Path | None = None) -> RunSummary:
        """Process every image under `input_path` in one session."""
        units = build_units(find_image_files(input_path, recurse=recurse))
        if not units:
            logger.warning(f"No supported images found in {input_path}")
            return RunSummary()

        label = Path(input_path).name or str(input_path)
        profile = Path(profile_dir).expanduser() if profile_dir else None
        try:
            summary = await self._run_session(units, profile, label)
        except Exception as e:
            logger.error(f"[{label}] Session failed: {type(e).__name__}: {e}", exc_info=True)
            summary = RunSummary()
        log_summary(summary)
        return summary

    async def run_paired(self, input_root: str | Path, profiles_root: str | Path) -> RunSummary:
        """Pair input subdirectories with profile subdirectories and run them concurrently."""
        pairs = build_pairs(find_subdirectories(input_root), find_subdirectories(profiles_root))
        if not pairs:
            logger.warning("No input/profile pairs to process")
            return RunSummary()

        concurrency = self.settings.run.concurrency
        logger.info(f"Processing {len(pairs)} pair(s) with concurrency {concurrency}")
        semaphore = asyncio.Semaphore(concurrency)

        results = await asyncio.gather(*(self._run_pair(pair, semaphore) for pair in pairs))
        summary = sum(results, RunSummary())
        log_summary(summary, sessions=len(pairs))
        return summary

    async def _run_pair(self, pair: PairAssignment, semaphore: asyncio.Semaphore) -> RunSummary:
        async with semaphore:
            bind_session_context(pair.input_dir.name, pair.profile_dir.name)
            try:
                units = build_units(find_image_files(pair.input_dir))
                if not units:
                    logger.warning(f"[{pair.label}] No supported images; skipping session")
                    return RunSummary()
                logger.info(f"[{pair.label}] {len(units)} image(s)")
                return await self._run_session(units, pair.profile_dir, pair.label)
            except Exception as e:
                logger.error(f"[{pair.label}] Session failed: {type(e).__name__}: {e}", exc_info=True)
                return RunSummary()
            finally:
                clear_session_context()

    async def _run_session(self, units: list[ImageUnit], profile_dir: Path | None, label: str) -> RunSummary:
        self._active += 1
        self.max_active = max(self.max_active, self._active)
        session: SessionContext | None = None
        try:
            session = await self.session_factory(self.settings, self.surface, profile_dir, label)
            pipeline = SubmissionPipeline(
                session.adapter,
                session.counter_store,
                prompt=self.settings.run.prompt,
                pacing_delay=self.settings.run.wait_timeout,
                skip_if_created=self.settings.run.skip_if_created,
                retry_policy=RetryPolicy(max_retries=1, stabilization_delay=self.settings.wait.reload_stabilization_delay),
            )
            try:
                return await pipeline.run(units)
            except SessionLostError as e:
                logger.error(f"[{label}] {e}")
                return pipeline.summary
        finally:
            self._active -= 1
            if session is not None:
                await session.close()


def log_summary(summary: RunSummary, sessions: int | None = None) -> None:
    """Log the end-of-run banner."""
    logger.info("=" * 50)
    logger.info("Processing summary")
    if sessions is not None:
        logger.info(f"  Sessions:           {sessions}")
    logger.info(f"  Processed:          {summary.processed}")
    logger.info(f"  Skipped:            {summary.skipped}")
    logger.info(f"  Succeeded:          {summary.success}")
    logger.info(f"  Failed:             {summary.failed}")
    logger.info(f"  Submit errors:      {summary.submit_errors}")
    logger.info(f"  Counter errors:     {summary.counter_errors}")
    logger.info("=" * 50)
