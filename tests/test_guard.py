"""Tests for ObstructionGuard."""

import asyncio

import pytest
from conftest import FakePage

from image_from_image.adapters.guard import ObstructionGuard
from image_from_image.exceptions import ElementTimeoutError, NotReadyError, SessionLostError
from image_from_image.surfaces import CHATGPT, GEMINI

OBSTRUCTION = "#turnstile-wrapper"
READY = CHATGPT.selectors.ready_selectors[0]


class Captures:
    def __init__(self):
        self.prefixes: list[str] = []

    async def __call__(self, prefix):
        self.prefixes.append(prefix)


@pytest.fixture
def guard(fast_settings) -> ObstructionGuard:
    return ObstructionGuard(CHATGPT.selectors, fast_settings)


async def test_ready_page_passes(guard):
    capture = Captures()

    assert await guard.check(FakePage(present={READY}), capture=capture) is False
    assert capture.prefixes == []


async def test_nothing_visible_passes(guard):
    assert await guard.check(FakePage()) is False


async def test_obstruction_then_ready_again(guard):
    capture = Captures()
    page = FakePage(present={OBSTRUCTION, READY})

    # Both appear at once: the obstruction wins
    assert await guard.check(page, capture=capture) is True
    assert capture.prefixes == ["obstruction"]


async def test_obstruction_never_cleared_raises(guard):
    with pytest.raises(NotReadyError):
        await guard.check(FakePage(present={OBSTRUCTION}))


async def test_obstruction_waits_for_manual_intervention(guard, fast_settings, monkeypatch):
    pauses: list[tuple[float, str]] = []

    async def fake_pause(seconds, reason):
        pauses.append((seconds, reason))

    monkeypatch.setattr("image_from_image.adapters.guard.pause", fake_pause)
    fast_settings.wait.manual_intervention_timeout = 120.0

    await guard.check(FakePage(present={OBSTRUCTION, READY}))

    assert pauses == [(120.0, "manual intervention")]


async def test_surface_without_markers_skips_check(fast_settings):
    page = FakePage()
    guard = ObstructionGuard(GEMINI.selectors, fast_settings)

    assert await guard.check(page) is False
    assert page.actions == []


async def test_slow_ready_loses_to_obstruction(guard):
    class SlowReadyPage(FakePage):
        async def wait_for_all(self, selectors, visible=False, timeout=None):
            await asyncio.sleep(0.05)
            return await super().wait_for_all(selectors, visible=visible, timeout=timeout)

    page = SlowReadyPage(present={OBSTRUCTION, READY})

    assert await guard.check(page) is True


async def test_session_lost_during_check_propagates(guard):
    class DeadPage(FakePage):
        async def wait_for(self, selectors, visible=False, timeout=None):
            raise SessionLostError("browser closed")

    with pytest.raises(SessionLostError):
        await guard.check(DeadPage())


async def test_delay_if_not_ready_uses_fallback(guard, fast_settings, monkeypatch):
    pauses: list[float] = []

    async def fake_pause(seconds, reason):
        pauses.append(seconds)

    monkeypatch.setattr("image_from_image.adapters.guard.pause", fake_pause)
    fast_settings.wait.fallback_delay = 7.0

    assert await guard.delay_if_not_ready(FakePage()) is True
    assert pauses == [7.0]


async def test_delay_if_not_ready_skipped_when_ready(guard, monkeypatch):
    async def fail_pause(seconds, reason):
        raise AssertionError("should not pause")

    monkeypatch.setattr("image_from_image.adapters.guard.pause", fail_pause)

    assert await guard.delay_if_not_ready(FakePage(present={READY})) is False


async def test_fallback_defaults_to_pacing_delay(fast_settings):
    fast_settings.run.wait_timeout = 5.0
    assert fast_settings.get_fallback_delay() == 5.0


def test_element_timeout_message():
    error = ElementTimeoutError("#prompt", 2.5)
    assert "#prompt" in str(error)
    assert error.timeout == 2.5
