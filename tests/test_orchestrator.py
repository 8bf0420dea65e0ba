"""Tests for the batch orchestrator."""

import asyncio

import numpy as np
import pytest

from conftest import FakeEngine, FakeTranslator, make_bitmap
from snapocr.models import PageStatus, RunOutcome, SourceKind
from snapocr.pipeline.orchestrator import BatchOrchestrator, ProgressTracker, RunOptions
from snapocr.pipeline.stage_ocr import EngineHandle, RecognitionResult


def run(orchestrator, **options):
    return asyncio.run(orchestrator.run(RunOptions(**options)))


def statuses(registry):
    return [page.status for page in registry.all()]


class TestProgressTracker:
    """Tests for aggregate progress."""

    def test_never_moves_backwards(self):
        values = []
        tracker = ProgressTracker(values.append)
        tracker.advance(2, 4)
        tracker.advance(1, 4)

        assert values == [0.5, 0.5]

    def test_clamped(self):
        tracker = ProgressTracker()
        tracker.advance(5, 4)
        assert tracker.value == 1.0

    def test_complete_pins_to_one(self):
        tracker = ProgressTracker()
        tracker.advance(1, 3)
        tracker.complete()
        assert tracker.value == 1.0

    def test_reset(self):
        tracker = ProgressTracker()
        tracker.complete()
        tracker.reset()
        assert tracker.value == 0.0


class TestBatchRun:
    """Tests for a normal batch run."""

    def test_partial_failure_scenario(self, filled_registry, observer):
        """Recognition fails on the second page only."""
        engine = FakeEngine(fail_on={2})
        orchestrator = BatchOrchestrator(filled_registry, engine, observer=observer)

        summary = run(orchestrator)

        assert statuses(filled_registry) == [PageStatus.DONE, PageStatus.ERROR, PageStatus.DONE]
        assert summary.outcome == RunOutcome.COMPLETED
        assert (summary.done, summary.error) == (2, 1)
        assert observer.progress[-1] == 1.0
        assert orchestrator.progress.value == 1.0

    def test_failure_isolated(self, filled_registry):
        """A failed page does not block or alter later pages."""
        engine = FakeEngine(fail_on={1})
        orchestrator = BatchOrchestrator(filled_registry, engine)

        run(orchestrator)

        failed, ok = filled_registry.get(1), filled_registry.get(2)
        assert failed.status == PageStatus.ERROR
        assert failed.recognized_text == ""
        assert "unreadable" in failed.error_message
        assert ok.status == PageStatus.DONE
        assert ok.recognized_text == "text 2"
        assert ok.ocr_confidence == 0.9

    def test_progress_monotonic_and_complete(self, filled_registry, observer):
        orchestrator = BatchOrchestrator(filled_registry, FakeEngine(fail_on={3}), observer=observer)

        run(orchestrator)

        assert observer.progress[0] == 0.0
        assert observer.progress == sorted(observer.progress)
        assert observer.progress[-1] == 1.0
        assert observer.progress[1:4] == pytest.approx([1 / 3, 2 / 3, 1.0])

    def test_status_observations(self, registry, observer):
        registry.create("a", SourceKind.IMAGE, make_bitmap())
        orchestrator = BatchOrchestrator(registry, FakeEngine(), observer=observer)

        run(orchestrator)

        assert observer.statuses == [(1, PageStatus.PROCESSING), (1, PageStatus.DONE)]

    def test_registry_order(self, filled_registry):
        engine = FakeEngine()
        run(BatchOrchestrator(filled_registry, engine))

        assert [p.recognized_text for p in filled_registry.all()] == ["text 1", "text 2", "text 3"]

    def test_language_fixed_per_run(self, filled_registry):
        """The engine is initialized once, with the run's language."""
        engine = FakeEngine()
        run(BatchOrchestrator(filled_registry, engine), language="deu")

        assert engine.languages == ["deu"]
        assert engine.handles[0].released is True

    def test_rotation_and_enhancement_applied(self, registry):
        page = registry.create("a", SourceKind.IMAGE, make_bitmap(2, 3))
        page.rotation = 90
        engine = FakeEngine()

        run(BatchOrchestrator(registry, engine), enhanced=True)

        bitmap = engine.bitmaps[0]
        assert bitmap.shape == (3, 2, 3)
        assert set(np.unique(bitmap)) <= {0, 255}
        # Canonical bitmap untouched
        assert page.bitmap.shape == (2, 3, 3)

    def test_unexpected_error_is_page_scoped(self, filled_registry):
        """Non-pipeline exceptions from the engine still only fail one page."""

        class BrokenEngine(FakeEngine):
            async def recognize(self, handle, bitmap):
                if not self.bitmaps:
                    self.bitmaps.append(bitmap)
                    raise ValueError("bad image")
                return await super().recognize(handle, bitmap)

        summary = run(BatchOrchestrator(filled_registry, BrokenEngine()))

        assert statuses(filled_registry) == [PageStatus.ERROR, PageStatus.DONE, PageStatus.DONE]
        assert summary.failures[0].stage == "ocr"


class TestEligibility:
    """Tests for which pages a run touches."""

    def test_nothing_to_do(self, filled_registry, observer):
        """All pages excluded: no engine, no progress, no state change."""
        for page in filled_registry.all():
            page.is_included = False
        engine = FakeEngine()

        summary = run(BatchOrchestrator(filled_registry, engine, observer=observer))

        assert summary.outcome == RunOutcome.NOTHING_TO_DO
        assert engine.languages == []
        assert observer.progress == []
        assert statuses(filled_registry) == [PageStatus.READY] * 3

    def test_skips_excluded_and_texted_pages(self, filled_registry):
        filled_registry.get(1).is_included = False
        filled_registry.get(2).recognized_text = "manual edit"
        engine = FakeEngine()

        summary = run(BatchOrchestrator(filled_registry, engine))

        assert summary.total == 1
        assert len(engine.bitmaps) == 1
        assert filled_registry.get(1).status == PageStatus.READY
        assert filled_registry.get(2).recognized_text == "manual edit"
        assert filled_registry.get(2).status == PageStatus.READY
        assert filled_registry.get(3).status == PageStatus.DONE

    def test_rerun_does_not_overwrite(self, filled_registry):
        engine = FakeEngine(fail_on={2})
        orchestrator = BatchOrchestrator(filled_registry, engine)
        run(orchestrator)

        second = run(orchestrator)

        # Only the failed page is retried
        assert second.total == 1
        assert [p.recognized_text for p in filled_registry.all()] == ["text 1", "text 4", "text 3"]

        third = run(orchestrator)
        assert third.outcome == RunOutcome.NOTHING_TO_DO

    def test_pages_added_mid_run_not_included(self, registry):
        registry.create("a", SourceKind.IMAGE, make_bitmap())
        registry.create("b", SourceKind.IMAGE, make_bitmap())

        class AddingEngine(FakeEngine):
            async def recognize(self, handle, bitmap):
                if not self.bitmaps:
                    registry.create("late", SourceKind.IMAGE, make_bitmap())
                return await super().recognize(handle, bitmap)

        engine = AddingEngine()
        summary = run(BatchOrchestrator(registry, engine))

        assert summary.total == 2
        assert len(engine.bitmaps) == 2
        assert registry.get(3).status == PageStatus.READY


class TestEngineFailures:
    """Tests for run-fatal engine errors."""

    def test_initialization_failure(self, filled_registry, observer):
        engine = FakeEngine(fail_init=True)
        orchestrator = BatchOrchestrator(filled_registry, engine, observer=observer)

        summary = run(orchestrator)

        assert summary.outcome == RunOutcome.ENGINE_FAILED
        assert summary.is_fatal
        assert "would not start" in summary.fatal_error
        assert (summary.done, summary.error) == (0, 0)
        assert statuses(filled_registry) == [PageStatus.READY] * 3
        assert observer.statuses == []
        assert orchestrator.is_running is False

    def test_unexpected_initialization_failure(self, filled_registry, observer):
        """Any exception while starting the engine is reported as run-fatal."""

        class MissingLibraryEngine(FakeEngine):
            async def initialize(self, language):
                raise RuntimeError("libtesseract.so missing")

        orchestrator = BatchOrchestrator(filled_registry, MissingLibraryEngine(), observer=observer)

        summary = run(orchestrator)

        assert summary.outcome == RunOutcome.ENGINE_FAILED
        assert "libtesseract.so missing" in summary.fatal_error
        assert statuses(filled_registry) == [PageStatus.READY] * 3
        assert observer.progress == []
        assert orchestrator.is_running is False

    def test_engine_dies_mid_run(self, filled_registry, observer):
        """The current page settles as Error, later pages stay untouched."""
        engine = FakeEngine(fatal_on={2})
        orchestrator = BatchOrchestrator(filled_registry, engine, observer=observer)

        summary = run(orchestrator)

        assert summary.outcome == RunOutcome.ENGINE_FAILED
        assert statuses(filled_registry) == [PageStatus.DONE, PageStatus.ERROR, PageStatus.READY]
        assert observer.progress[-1] == 1.0
        assert engine.handles[0].released is True
        assert not any(p.status == PageStatus.PROCESSING for p in filled_registry.all())


class TestTranslation:
    """Tests for the chained translation step."""

    def test_translates_recognized_text(self, filled_registry):
        translator = FakeTranslator()
        run(
            BatchOrchestrator(filled_registry, FakeEngine(), translator),
            translation_target="de",
        )

        assert filled_registry.get(1).translated_text == "[DE] text 1"
        assert translator.calls[0] == ("text 1", "de")

    def test_none_target_skips_translation(self, filled_registry):
        translator = FakeTranslator()
        run(
            BatchOrchestrator(filled_registry, FakeEngine(), translator),
            translation_target="none",
        )

        assert translator.calls == []
        assert filled_registry.get(1).translated_text == ""

    def test_translation_failure_keeps_done(self, filled_registry, observer):
        orchestrator = BatchOrchestrator(
            filled_registry,
            FakeEngine(),
            FakeTranslator(fail=True),
            observer=observer,
        )

        summary = run(orchestrator, translation_target="fr")

        assert statuses(filled_registry) == [PageStatus.DONE] * 3
        page = filled_registry.get(1)
        assert page.translated_text == ""
        assert page.recognized_text == "text 1"
        assert page.error_message.startswith("Translation failed")
        assert summary.done == 3
        assert summary.translation_failed == 3
        assert (1, "translation") in observer.failures

    def test_missing_translator_is_page_scoped(self, filled_registry):
        summary = run(
            BatchOrchestrator(filled_registry, FakeEngine()),
            translation_target="es",
        )

        assert summary.outcome == RunOutcome.COMPLETED
        assert summary.translation_failed == 3

    def test_failed_ocr_skips_translation(self, registry):
        registry.create("a", SourceKind.IMAGE, make_bitmap())
        translator = FakeTranslator()

        run(
            BatchOrchestrator(registry, FakeEngine(fail_on={1}), translator),
            translation_target="de",
        )

        assert translator.calls == []


class TestReentrancy:
    """Tests for the single-active-run rule."""

    def test_second_run_rejected(self, filled_registry):

        class BlockingEngine(FakeEngine):
            def __init__(self):
                super().__init__()
                self.started = asyncio.Event()
                self.proceed = asyncio.Event()

            async def recognize(self, handle, bitmap):
                self.started.set()
                await self.proceed.wait()
                return RecognitionResult(text="slow")

        async def scenario():
            engine = BlockingEngine()
            orchestrator = BatchOrchestrator(filled_registry, engine)

            first = asyncio.create_task(orchestrator.run())
            await engine.started.wait()

            second = await orchestrator.run()
            state_during = statuses(filled_registry)
            progress_during = orchestrator.progress.value
            running_during = orchestrator.is_running

            engine.proceed.set()
            return second, state_during, progress_during, running_during, await first

        second, state_during, progress_during, running_during, first = asyncio.run(scenario())

        assert second.outcome == RunOutcome.ALREADY_RUNNING
        assert running_during is True
        assert state_during == [PageStatus.PROCESSING, PageStatus.READY, PageStatus.READY]
        assert progress_during == 0.0
        assert first.outcome == RunOutcome.COMPLETED
        assert first.done == 3


class TestEngineHandle:
    """Tests for handle lifecycle."""

    def test_handle_released_flag(self):
        engine = FakeEngine()
        handle = EngineHandle(engine="fake", language="eng")

        asyncio.run(engine.release(handle))

        assert handle.released is True
