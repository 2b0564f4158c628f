"""Pytest configuration and fixtures for image-from-image tests."""

from pathlib import Path

import pytest

from image_from_image.config import AppSettings, BrowserSettings, RunSettings, WaitSettings
from image_from_image.counters import CounterStore
from image_from_image.exceptions import CounterStoreError, ElementTimeoutError
from image_from_image.models import CounterRecord, ImageUnit, ProcessReport


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: End-to-end tests requiring a real browser and a signed-in profile")
    config.addinivalue_line("markers", "integration: Integration tests with a real browser against local pages")
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


@pytest.fixture
def fast_settings(tmp_path) -> AppSettings:
    """Settings with every delay at zero and tiny timeouts."""
    zero_waits = {name: 0.0 for name in WaitSettings.model_fields if name != "fallback_delay"}
    zero_waits.update(poll_interval=0.001, gate_timeout=0.05, response_timeout=0.05, ready_timeout=0.05)
    return AppSettings(
        browser=BrowserSettings(action_timeout=0.05, navigation_timeout=0.05),
        run=RunSettings(wait_timeout=0.0, output_dir=str(tmp_path / "output"), concurrency=2),
        wait=WaitSettings(**zero_waits),
    )


@pytest.fixture
def units(tmp_path) -> list[ImageUnit]:
    paths = []
    for name in ("img1.jpg", "img2.jpg", "img3.jpg"):
        path = tmp_path / name
        path.write_bytes(b"")
        paths.append(path)
    return [ImageUnit(path=p, index=i) for i, p in enumerate(paths, start=1)]


class MemoryCounterStore(CounterStore):
    """Dict-backed store that records every increment in order."""

    def __init__(self, records: dict[str, CounterRecord] | None = None):
        self.records = dict(records or {})
        self.increments: list[tuple[str, str]] = []
        self.fail_writes = False
        self.fail_reads = False
        self.closed = False

    async def read(self, file_id):
        if self.fail_reads:
            raise CounterStoreError("read failed")
        return self.records.get(file_id)

    async def write(self, file_id, record):
        if self.fail_writes:
            raise CounterStoreError("write failed")
        self.records[file_id] = record

    async def increment(self, file_id, outcome):
        updated = await super().increment(file_id, outcome)
        self.increments.append((Path(file_id).name, outcome.value))
        return updated

    async def close(self):
        self.closed = True


class ScriptedAdapter:
    """Adapter double: each `process` call pops the next scripted step.

    A step is a ProcessReport, an exception instance, or a callable taking the
    unit and returning either.
    """

    def __init__(self, steps=None):
        self.steps = list(steps or [])
        self.calls: list[str] = []
        self.recoveries = 0
        self.diagnostics: list[str] = []
        self.discarded = 0
        self.events: list[str] = []

    async def process(self, unit, prompt):
        self.calls.append(unit.name)
        self.events.append(f"process:{unit.name}")
        step = self.steps.pop(0) if self.steps else ProcessReport(submitted=True)
        if callable(step) and not isinstance(step, BaseException):
            step = step(unit)
        if isinstance(step, BaseException):
            raise step
        return step

    async def recover(self):
        self.recoveries += 1

    async def capture_diagnostics(self, prefix):
        self.diagnostics.append(prefix)
        return None

    def discard_pending(self):
        self.discarded += 1


@pytest.fixture
def memory_store() -> MemoryCounterStore:
    return MemoryCounterStore()


class FakeElement:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    async def click(self):
        self.page.actions.append(("click", self.selector))
        on_click = self.page.on_click.get(self.selector)
        if on_click:
            on_click()

    async def type_text(self, text):
        self.page.actions.append(("type", text))

    async def upload_file(self, path):
        self.page.actions.append(("upload", Path(path).name))


class FakePage:
    """In-memory page: a selector "exists" when it is in `present`.

    Selector lists match when any member is present, like a CSS selector list.
    """

    def __init__(self, present=(), blocks=0, items=0):
        self.present: set[str] = set(present)
        self.blocks = blocks
        self.items = items
        self.actions: list[tuple] = []
        self.on_click: dict = {}
        self.reloads = 0
        self.screenshots: list[Path] = []
        self.is_closed = False
        self.count_error: Exception | None = None

    def _matches(self, selectors):
        if isinstance(selectors, str):
            selectors = [s.strip() for s in selectors.split(", ")]
        return any(s in self.present for s in selectors)

    async def wait_for(self, selectors, visible=False, timeout=None):
        if self._matches(selectors):
            return FakeElement(self, selectors if isinstance(selectors, str) else ", ".join(selectors))
        raise ElementTimeoutError(str(selectors), timeout or 0)

    async def wait_for_all(self, selectors, visible=False, timeout=None):
        return [await self.wait_for(s, visible=visible, timeout=timeout) for s in selectors]

    async def wait_until_hidden(self, selectors, timeout):
        if self._matches(selectors):
            raise ElementTimeoutError(f"{selectors} (hidden)", timeout)

    async def count_in_last(self, container, item):
        if self.count_error is not None:
            raise self.count_error
        return self.blocks, self.items

    async def reload(self, timeout):
        self.reloads += 1

    async def screenshot(self, path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"png")
        self.screenshots.append(path)
        return path

    async def close(self):
        self.is_closed = True
