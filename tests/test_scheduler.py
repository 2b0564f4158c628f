"""Tests for SessionScheduler pairing, concurrency bounds and isolation."""

import asyncio
from pathlib import Path

import pytest
from conftest import FakePage, MemoryCounterStore, ScriptedAdapter

from image_from_image.exceptions import DiscoveryError, SessionLostError
from image_from_image.models import Outcome, OutcomeRecord, ProcessReport, RunSummary
from image_from_image.scheduler import SessionContext, SessionScheduler
from image_from_image.surfaces import GEMINI


def make_tree(root: Path, groups: dict[str, int], profiles: int) -> tuple[Path, Path]:
    inputs = root / "inputs"
    for name, count in groups.items():
        group = inputs / name
        group.mkdir(parents=True)
        for i in range(count):
            (group / f"img{i}.png").write_bytes(b"")
        (group / "notes.txt").write_text("ignored")
    profile_root = root / "profiles"
    for i in range(profiles):
        (profile_root / f"profile{i}").mkdir(parents=True)
    return inputs, profile_root


class SucceedingAdapter(ScriptedAdapter):
    """Resolves every unit as SUCCESS after yielding to the loop."""

    def __init__(self, delay: float = 0.0):
        super().__init__()
        self.delay = delay

    async def process(self, unit, prompt):
        self.calls.append(unit.name)
        await asyncio.sleep(self.delay)
        return ProcessReport(submitted=True, resolved=OutcomeRecord(unit, Outcome.SUCCESS))


class RecordingFactory:
    def __init__(self, adapter_factory=SucceedingAdapter, fail_for: set[str] | None = None):
        self.adapter_factory = adapter_factory
        self.fail_for = fail_for or set()
        self.opened: list[tuple[str, Path | None]] = []
        self.sessions: list[SessionContext] = []

    async def __call__(self, settings, surface, profile_dir, label):
        self.opened.append((label, profile_dir))
        await asyncio.sleep(0)
        if any(name in label for name in self.fail_for):
            raise RuntimeError(f"browser for {label} crashed")
        session = SessionContext(label=label, page=FakePage(), adapter=self.adapter_factory(), counter_store=MemoryCounterStore())
        self.sessions.append(session)
        return session


class TestPairedMode:
    async def test_pairs_are_min_of_groups_and_profiles(self, tmp_path, fast_settings):
        inputs, profiles = make_tree(tmp_path, {"a": 1, "b": 1, "c": 1}, profiles=2)
        factory = RecordingFactory()

        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_paired(inputs, profiles)

        assert sorted((label, p.name) for label, p in factory.opened) == [("a<->profile0", "profile0"), ("b<->profile1", "profile1")]
        assert summary.processed == 2

    async def test_concurrency_is_bounded(self, tmp_path, fast_settings):
        inputs, profiles = make_tree(tmp_path, {f"g{i}": 2 for i in range(5)}, profiles=5)
        fast_settings.run.concurrency = 2
        scheduler = SessionScheduler(fast_settings, GEMINI, session_factory=RecordingFactory(lambda: SucceedingAdapter(delay=0.01)))

        summary = await scheduler.run_paired(inputs, profiles)

        assert scheduler.max_active == 2
        assert summary.processed == 10

    async def test_failing_pair_does_not_affect_siblings(self, tmp_path, fast_settings):
        inputs, profiles = make_tree(tmp_path, {"a": 2, "b": 3, "c": 1}, profiles=3)
        factory = RecordingFactory(fail_for={"b<->"})

        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_paired(inputs, profiles)

        assert len(factory.opened) == 3
        assert summary.processed == 3
        assert summary.success == 3

    async def test_summaries_are_summed(self, tmp_path, fast_settings):
        inputs, profiles = make_tree(tmp_path, {"a": 2, "b": 3, "c": 4}, profiles=3)
        factory = RecordingFactory()

        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_paired(inputs, profiles)

        per_session = [session.counter_store for session in factory.sessions]
        assert summary.success == sum(len(store.increments) for store in per_session) == 9
        assert summary == RunSummary(processed=9, success=9)

    async def test_sessions_are_always_closed(self, tmp_path, fast_settings):
        inputs, profiles = make_tree(tmp_path, {"a": 1, "b": 1}, profiles=2)
        factory = RecordingFactory()

        await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_paired(inputs, profiles)

        assert all(s.page.is_closed and s.counter_store.closed for s in factory.sessions)

    async def test_empty_group_opens_no_browser(self, tmp_path, fast_settings):
        inputs, profiles = make_tree(tmp_path, {"a": 0, "b": 2}, profiles=2)
        factory = RecordingFactory()

        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_paired(inputs, profiles)

        assert [label for label, _ in factory.opened] == ["b<->profile1"]
        assert summary.processed == 2

    async def test_lost_session_keeps_partial_summary(self, tmp_path, fast_settings):
        inputs, profiles = make_tree(tmp_path, {"a": 3}, profiles=1)

        def dying_adapter():
            return ScriptedAdapter([ProcessReport(submitted=True), SessionLostError("browser closed")])

        factory = RecordingFactory(dying_adapter)
        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_paired(inputs, profiles)

        assert summary.processed == 2
        assert factory.sessions[0].page.is_closed

    async def test_missing_profiles_root(self, tmp_path, fast_settings):
        inputs, _ = make_tree(tmp_path, {"a": 1}, profiles=0)

        with pytest.raises(DiscoveryError):
            await SessionScheduler(fast_settings, GEMINI, session_factory=RecordingFactory()).run_paired(inputs, tmp_path / "nope")


class TestSingleMode:
    async def test_runs_one_session(self, tmp_path, fast_settings):
        inputs, _ = make_tree(tmp_path, {"a": 3}, profiles=0)
        factory = RecordingFactory()

        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_single(inputs / "a")

        assert factory.opened == [("a", None)]
        assert factory.sessions[0].adapter.calls == ["img0.png", "img1.png", "img2.png"]
        assert summary.processed == 3

    async def test_single_file(self, tmp_path, fast_settings):
        inputs, _ = make_tree(tmp_path, {"a": 1}, profiles=0)
        factory = RecordingFactory()

        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_single(inputs / "a" / "img0.png", profile_dir=tmp_path)

        assert factory.opened[0][1] == tmp_path
        assert summary.success == 1

    async def test_no_images_opens_no_browser(self, tmp_path, fast_settings):
        inputs, _ = make_tree(tmp_path, {"a": 0}, profiles=0)
        factory = RecordingFactory()

        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_single(inputs / "a")

        assert factory.opened == []
        assert summary == RunSummary()

    async def test_session_failure_still_returns_summary(self, tmp_path, fast_settings):
        inputs, _ = make_tree(tmp_path, {"a": 1}, profiles=0)
        factory = RecordingFactory(fail_for={"a"})

        summary = await SessionScheduler(fast_settings, GEMINI, session_factory=factory).run_single(inputs / "a")

        assert summary == RunSummary()
