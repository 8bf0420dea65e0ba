"""Ingestion - turn input files into registered pages.

Each file is decoded completely before any page is registered, so a file
that fails to decode leaves no partial pages behind. One bad file never
stops the rest of the batch.
"""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from snapocr.config import settings
from snapocr.errors import DecodeError, FileTooLargeError, UnsupportedFileError
from snapocr.models import Page, SourceKind
from snapocr.pipeline.stage_render import Rasterizer
from snapocr.storage import PageRegistry

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


def guess_mime_type(name: str) -> Optional[str]:
    """Guess a MIME type from a file name."""
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type


def document_page_name(filename: str, page_number: int) -> str:
    """Display label for one page of a multi-page document (1-indexed)."""
    return f"{filename} (Page {page_number})"


class IngestFailure(BaseModel):
    """A source file that produced no pages."""

    source_name: str
    reason: str
    error_type: str = Field(..., description="Exception class name")


class IngestReport(BaseModel):
    """Outcome of ingesting a batch of files."""

    page_ids: list[int] = Field(default_factory=list)
    failures: list[IngestFailure] = Field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.page_ids)


class Ingestor:
    """Reads source files, rasterizes them and appends pages to a registry."""

    def __init__(
        self,
        registry: PageRegistry,
        rasterizer: Optional[Rasterizer] = None,
        max_file_size_bytes: Optional[int] = None,
    ):
        """Initialize ingestor.

        Args:
            registry: Registry receiving the new pages.
            rasterizer: Source decoder (default Rasterizer()).
            max_file_size_bytes: Size limit per file (default from settings).
        """
        self.registry = registry
        self.rasterizer = rasterizer or Rasterizer()
        self.max_file_size_bytes = max_file_size_bytes or settings.max_file_size_bytes

    async def ingest_paths(self, paths: Iterable[Path]) -> IngestReport:
        """Ingest files in the given order.

        Args:
            paths: Files to read.

        Returns:
            IngestReport with created page ids and per-file failures.
        """
        report = IngestReport()
        for path in paths:
            path = Path(path)
            try:
                data = await self._read(path)
                pages = await self.ingest_bytes(path.name, data)
            except DecodeError as exc:
                logger.warning("Skipping %s: %s", path.name, exc)
                report.failures.append(
                    IngestFailure(
                        source_name=path.name,
                        reason=str(exc),
                        error_type=type(exc).__name__,
                    )
                )
                continue
            report.page_ids.extend(page.id for page in pages)
        return report

    async def ingest_bytes(
        self,
        name: str,
        data: bytes,
        mime_type: Optional[str] = None,
    ) -> list[Page]:
        """Ingest one in-memory file.

        Args:
            name: Source file name (used for labels and type detection).
            data: Raw file contents.
            mime_type: Explicit MIME type; guessed from the name when omitted.

        Returns:
            The pages created, in document order.

        Raises:
            DecodeError: If the file is too large, unsupported or malformed.
        """
        if len(data) > self.max_file_size_bytes:
            raise FileTooLargeError(
                f"File {name} is too large (max {self.max_file_size_bytes // (1024 * 1024)}MB)",
                source_name=name,
            )

        mime_type = mime_type or guess_mime_type(name) or ""

        if mime_type == PDF_MIME_TYPE:
            bitmaps = await self._rasterize_document(name, data)
            pages = [
                self.registry.create(
                    document_page_name(name, number),
                    SourceKind.DOCUMENT_PAGE,
                    bitmap,
                )
                for number, bitmap in enumerate(bitmaps, start=1)
            ]
        elif mime_type.startswith("image/"):
            bitmap = await self._rasterize(name, data)
            pages = [self.registry.create(name, SourceKind.IMAGE, bitmap)]
        else:
            raise UnsupportedFileError(
                f"Unsupported file type: {mime_type or 'unknown'}",
                source_name=name,
            )

        logger.info("Ingested %s: %d page(s)", name, len(pages))
        return pages

    async def _read(self, path: Path) -> bytes:
        try:
            size = path.stat().st_size
        except OSError as exc:
            raise DecodeError(f"Cannot read {path.name}: {exc}", source_name=path.name) from exc

        if size > self.max_file_size_bytes:
            raise FileTooLargeError(
                f"File {path.name} is too large (max {self.max_file_size_bytes // (1024 * 1024)}MB)",
                source_name=path.name,
            )

        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise DecodeError(f"Cannot read {path.name}: {exc}", source_name=path.name) from exc

    async def _rasterize(self, name: str, data: bytes):
        try:
            return await asyncio.to_thread(self.rasterizer.rasterize, data)
        except DecodeError as exc:
            exc.source_name = name
            raise

    async def _rasterize_document(self, name: str, data: bytes):
        try:
            return await asyncio.to_thread(self.rasterizer.render_pdf_pages, data)
        except DecodeError as exc:
            exc.source_name = name
            raise
