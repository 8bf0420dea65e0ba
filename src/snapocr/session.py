"""User session: the object a UI or CLI binds to.

A Session owns one registry, the current selection, the run options and
the orchestrator. Nothing here is module-global, so independent sessions
never share state.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from pydantic import BaseModel

from snapocr.config import settings
from snapocr.errors import ExportError, ExportPreconditionError
from snapocr.models import Page, RunOutcome, RunSummary
from snapocr.pipeline.ingest import IngestReport, Ingestor
from snapocr.pipeline.orchestrator import BatchOrchestrator, RunObserver, RunOptions
from snapocr.pipeline.stage_export import export_pdf, export_text
from snapocr.pipeline.stage_ocr import OCREngine, TesseractOCR
from snapocr.pipeline.stage_preprocess import next_rotation
from snapocr.pipeline.stage_render import Rasterizer
from snapocr.pipeline.stage_translate import Translator
from snapocr.storage import PageRegistry

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    """Severity of a user-facing notification."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    """Non-blocking message for the user (a toast in a UI)."""

    level: NotificationLevel
    message: str


_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.ERROR: logging.WARNING,
}


def log_notification(notification: Notification) -> None:
    """Default notifier: send notifications to the log."""
    logger.log(_LOG_LEVELS[notification.level], notification.message)


class _SessionObserver(RunObserver):
    """Forwards orchestrator observations to the session's hooks."""

    def __init__(self, session: "Session"):
        self.session = session

    def on_status_changed(self, page: Page) -> None:
        if self.session.on_page_changed is not None:
            self.session.on_page_changed(page)

    def on_progress(self, progress: float) -> None:
        if self.session.on_progress is not None:
            self.session.on_progress(progress)

    def on_page_failed(self, page: Page, stage: str, error: Exception) -> None:
        if stage == "translation":
            self.session.notify(NotificationLevel.ERROR, f"Failed to translate {page.name}")
        else:
            self.session.notify(NotificationLevel.ERROR, f"Failed to process {page.name}")


class Session:
    """Single-user, in-memory OCR session."""

    def __init__(
        self,
        engine: Optional[OCREngine] = None,
        translator: Optional[Translator] = None,
        rasterizer: Optional[Rasterizer] = None,
        options: Optional[RunOptions] = None,
        notifier: Optional[Callable[[Notification], None]] = None,
    ):
        """Initialize session.

        Args:
            engine: OCR capability (default TesseractOCR()).
            translator: Translation capability, needed only when a
                translation target is set.
            rasterizer: Source decoder (default Rasterizer()).
            options: Run options (default from settings).
            notifier: Receives user-facing notifications (default: log).
        """
        self.registry = PageRegistry()
        self.options = options or RunOptions(
            language=settings.ocr_language,
            translation_target=settings.translation_target,
            enhanced=settings.enhanced_ocr,
        )
        self.notifier = notifier or log_notification
        self.selected_page_id: Optional[int] = None

        # UI binding hooks
        self.on_page_changed: Optional[Callable[[Page], None]] = None
        self.on_progress: Optional[Callable[[float], None]] = None

        self.ingestor = Ingestor(self.registry, rasterizer)
        self.orchestrator = BatchOrchestrator(
            self.registry,
            engine or TesseractOCR(),
            translator,
            observer=_SessionObserver(self),
        )

    def notify(self, level: NotificationLevel, message: str) -> None:
        """Emit a notification."""
        self.notifier(Notification(level=level, message=message))

    # ------------------------------------------------------------------
    # Pages and selection
    # ------------------------------------------------------------------

    @property
    def pages(self) -> tuple[Page, ...]:
        return self.registry.all()

    @property
    def selected_page(self) -> Optional[Page]:
        if self.selected_page_id is None:
            return None
        return self.registry.get(self.selected_page_id)

    def select(self, page_id: int) -> Optional[Page]:
        """Make a page the active selection. Unknown ids are ignored."""
        page = self.registry.get(page_id)
        if page is not None:
            self.selected_page_id = page_id
        return page

    def _ensure_selection(self) -> None:
        if self.selected_page is None:
            first = self.registry.first()
            self.selected_page_id = first.id if first is not None else None

    def rotate(self, page_id: int, step: int = 90) -> Optional[Page]:
        """Turn a page clockwise. Existing results are kept."""
        page = self.registry.get(page_id)
        if page is not None:
            page.rotation = next_rotation(page.rotation, step)
            page.touch()
        return page

    def set_included(self, page_id: int, included: bool) -> Optional[Page]:
        """Include or exclude a page from runs and exports."""
        page = self.registry.get(page_id)
        if page is not None:
            page.is_included = included
            page.touch()
        return page

    def edit_recognized_text(self, page_id: int, text: str) -> Optional[Page]:
        """Replace a page's OCR text. Non-empty text keeps it out of future runs."""
        page = self.registry.get(page_id)
        if page is not None:
            page.recognized_text = text
            page.touch()
        return page

    def edit_translated_text(self, page_id: int, text: str) -> Optional[Page]:
        """Replace a page's translation."""
        page = self.registry.get(page_id)
        if page is not None:
            page.translated_text = text
            page.touch()
        return page

    def reset_page(self, page_id: int) -> Optional[Page]:
        """Clear a page's results so the next run processes it again."""
        page = self.registry.get(page_id)
        if page is not None:
            page.reset()
        return page

    def remove(self, page_id: int) -> None:
        """Delete a page, moving the selection if it was selected."""
        self.registry.remove(page_id)
        if self.selected_page_id == page_id:
            self.selected_page_id = None
        self._ensure_selection()

    def clear(self) -> None:
        """Remove every page."""
        if not len(self.registry):
            return
        self.registry.clear()
        self.selected_page_id = None
        self.notify(NotificationLevel.INFO, "All pages cleared.")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def ingest(self, paths: Iterable[Path]) -> IngestReport:
        """Add files to the session. Bad files are reported, not raised."""
        report = await self.ingestor.ingest_paths(paths)
        for failure in report.failures:
            self.notify(NotificationLevel.ERROR, failure.reason)
        self._ensure_selection()
        return report

    async def run_batch(self) -> RunSummary:
        """Run OCR (and translation) over every eligible page."""
        summary = await self.orchestrator.run(self.options)

        if summary.outcome == RunOutcome.NOTHING_TO_DO:
            self.notify(NotificationLevel.INFO, "No new pages to process!")
        elif summary.outcome == RunOutcome.ALREADY_RUNNING:
            self.notify(NotificationLevel.INFO, "A batch run is already in progress.")
        elif summary.outcome == RunOutcome.ENGINE_FAILED:
            if summary.processed:
                message = (
                    f"OCR engine failed after {summary.processed} page(s); "
                    f"run aborted: {summary.fatal_error}"
                )
            else:
                message = f"Critical error starting OCR engine: {summary.fatal_error}"
            self.notify(NotificationLevel.ERROR, message)
        elif summary.error:
            self.notify(
                NotificationLevel.ERROR,
                f"Batch processing finished: {summary.done} done, {summary.error} failed.",
            )
        else:
            self.notify(NotificationLevel.SUCCESS, "Batch processing complete!")
        return summary

    def export_text(self) -> Optional[str]:
        """Text export, or None (with a notification) when nothing is included."""
        try:
            return export_text(self.registry)
        except ExportPreconditionError as exc:
            self.notify(NotificationLevel.ERROR, str(exc))
            return None

    def export_pdf(self) -> Optional[bytes]:
        """Rebuilt PDF, or None (with a notification) on failure."""
        try:
            data = export_pdf(self.registry)
        except ExportPreconditionError as exc:
            self.notify(NotificationLevel.ERROR, str(exc))
            return None
        except ExportError as exc:
            logger.error("PDF export failed: %s", exc)
            self.notify(NotificationLevel.ERROR, "Failed to generate PDF.")
            return None
        self.notify(NotificationLevel.SUCCESS, "PDF generated successfully.")
        return data
