"""Batch Orchestrator - run Preprocess -> OCR -> Translate over eligible pages.

A run works on a snapshot of the eligible pages taken when it starts and
walks them strictly one after another in registry order: the engine handle
is a single stateful resource, and sequential processing keeps progress
monotonic. Page-scoped failures are recorded on the page and the run moves
on. An engine failure aborts the run.

There is no mid-run cancellation. To keep a page out of a run, exclude it
before starting.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel

from snapocr.errors import EngineError, RecognitionError, TranslationError
from snapocr.models import (
    Page,
    PageFailure,
    PageStatus,
    RunOutcome,
    RunSummary,
)
from snapocr.pipeline.stage_ocr import EngineHandle, OCREngine
from snapocr.pipeline.stage_preprocess import prepare
from snapocr.pipeline.stage_translate import Translator, translation_enabled
from snapocr.storage import PageRegistry

logger = logging.getLogger(__name__)


class RunOptions(BaseModel):
    """Settings fixed for the duration of one batch run."""

    language: str = "eng"
    translation_target: Optional[str] = None
    enhanced: bool = False

    class Config:
        frozen = True


class RunObserver:
    """Receives run observations. Override what you need."""

    def on_status_changed(self, page: Page) -> None:
        """Page moved to a new status."""

    def on_progress(self, progress: float) -> None:
        """Aggregate progress changed (0.0 - 1.0)."""

    def on_page_failed(self, page: Page, stage: str, error: Exception) -> None:
        """A page-scoped error was recorded."""


class ProgressTracker:
    """Aggregate run progress, clamped to [0, 1] and never moving backwards."""

    def __init__(self, callback: Optional[Callable[[float], None]] = None):
        self.value = 0.0
        self._callback = callback

    def reset(self) -> None:
        """Start a new run at 0."""
        self.value = 0.0
        self._emit()

    def advance(self, processed: int, total: int) -> None:
        """Record that processed of total pages have settled."""
        fraction = processed / total if total else 1.0
        fraction = min(max(fraction, 0.0), 1.0)
        self.value = max(self.value, fraction)
        self._emit()

    def complete(self) -> None:
        """Pin progress to exactly 1.0."""
        self.value = 1.0
        self._emit()

    def _emit(self) -> None:
        if self._callback is not None:
            self._callback(self.value)


class BatchOrchestrator:
    """Sequences the page pipeline over a registry.

    Only one run may be active at a time; the registry is written only by
    the active run.
    """

    def __init__(
        self,
        registry: PageRegistry,
        engine: OCREngine,
        translator: Optional[Translator] = None,
        observer: Optional[RunObserver] = None,
    ):
        """Initialize orchestrator.

        Args:
            registry: Pages to process.
            engine: OCR capability, initialized once per run.
            translator: Translation capability (only used when a run asks
                for a target language).
            observer: Receives status, progress and failure observations.
        """
        self.registry = registry
        self.engine = engine
        self.translator = translator
        self.observer = observer or RunObserver()
        self.progress = ProgressTracker(self.observer.on_progress)
        self._active = False

    @property
    def is_running(self) -> bool:
        """Check if a run is in flight."""
        return self._active

    async def run(self, options: Optional[RunOptions] = None) -> RunSummary:
        """Process every eligible page once.

        Args:
            options: Language, translation target and enhancement for this run.

        Returns:
            RunSummary. Outcome is ALREADY_RUNNING or NOTHING_TO_DO without
            side effects, ENGINE_FAILED on a run-fatal error, else COMPLETED.
        """
        options = options or RunOptions()

        if self._active:
            logger.info("Batch run requested while another is active; ignoring")
            return RunSummary(outcome=RunOutcome.ALREADY_RUNNING)

        pages = self.registry.eligible()
        if not pages:
            logger.info("No new pages to process")
            return RunSummary(outcome=RunOutcome.NOTHING_TO_DO)

        self._active = True
        summary = RunSummary(
            outcome=RunOutcome.COMPLETED,
            total=len(pages),
            language=options.language,
        )
        try:
            await self._run_pages(pages, options, summary)
        finally:
            self._active = False
            summary.finished_at = datetime.utcnow()

        logger.info(
            "Batch run %s: %d done, %d error, %d translation failure(s)",
            summary.outcome.value,
            summary.done,
            summary.error,
            summary.translation_failed,
        )
        return summary

    async def _run_pages(
        self,
        pages: tuple[Page, ...],
        options: RunOptions,
        summary: RunSummary,
    ) -> None:
        try:
            handle = await self.engine.initialize(options.language)
        except EngineError as exc:
            logger.error("OCR engine failed to start: %s", exc)
            summary.outcome = RunOutcome.ENGINE_FAILED
            summary.fatal_error = str(exc)
            return
        except Exception as exc:
            logger.exception("Unexpected failure starting OCR engine")
            summary.outcome = RunOutcome.ENGINE_FAILED
            summary.fatal_error = str(exc) or type(exc).__name__
            return

        self.progress.reset()
        processed = 0
        try:
            for page in pages:
                try:
                    await self._process_page(page, handle, options, summary)
                finally:
                    processed += 1
                    self.progress.advance(processed, len(pages))
        except EngineError as exc:
            logger.error("OCR engine failed mid-run after %d page(s): %s", processed, exc)
            summary.outcome = RunOutcome.ENGINE_FAILED
            summary.fatal_error = str(exc)
        finally:
            for page in pages:
                if page.status == PageStatus.PROCESSING:
                    page.mark_failed("Run interrupted")
            self.progress.complete()
            await self.engine.release(handle)

    async def _process_page(
        self,
        page: Page,
        handle: EngineHandle,
        options: RunOptions,
        summary: RunSummary,
    ) -> None:
        logger.debug("Processing page %d (%s)", page.id, page.name)
        page.mark_processing()
        self.observer.on_status_changed(page)

        try:
            bitmap = prepare(page.bitmap, page.rotation, options.enhanced)
            result = await self.engine.recognize(handle, bitmap)
        except EngineError as exc:
            self._record_failure(page, "ocr", exc, summary)
            raise
        except RecognitionError as exc:
            self._record_failure(page, "ocr", exc, summary)
            return
        except Exception as exc:
            logger.exception("Unexpected OCR failure on page %d", page.id)
            self._record_failure(page, "ocr", exc, summary)
            return

        page.mark_done(result.text, result.confidence)
        summary.done += 1
        self.observer.on_status_changed(page)

        if translation_enabled(options.translation_target):
            await self._translate_page(page, options.translation_target, summary)

    async def _translate_page(self, page: Page, target: str, summary: RunSummary) -> None:
        logger.debug("Translating page %d to %s", page.id, target)
        try:
            if self.translator is None:
                raise TranslationError("No translation service configured")
            page.translated_text = await self.translator.translate(page.recognized_text, target)
        except TranslationError as exc:
            self._record_translation_failure(page, exc, summary)
        except Exception as exc:
            logger.exception("Unexpected translation failure on page %d", page.id)
            self._record_translation_failure(page, exc, summary)

    def _record_failure(
        self,
        page: Page,
        stage: str,
        error: Exception,
        summary: RunSummary,
    ) -> None:
        logger.warning("Failed to process page %d (%s): %s", page.id, page.name, error)
        page.mark_failed(str(error) or type(error).__name__)
        summary.error += 1
        summary.failures.append(
            PageFailure(page_id=page.id, page_name=page.name, stage=stage, message=page.error_message)
        )
        self.observer.on_status_changed(page)
        self.observer.on_page_failed(page, stage, error)

    def _record_translation_failure(
        self,
        page: Page,
        error: Exception,
        summary: RunSummary,
    ) -> None:
        # Status stays DONE: OCR success is what completes a page
        logger.warning("Failed to translate page %d (%s): %s", page.id, page.name, error)
        message = str(error) or type(error).__name__
        page.error_message = f"Translation failed: {message}"
        summary.translation_failed += 1
        summary.failures.append(
            PageFailure(page_id=page.id, page_name=page.name, stage="translation", message=message)
        )
        self.observer.on_page_failed(page, "translation", error)
