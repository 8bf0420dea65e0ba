"""Export Stage - Produce text bundles and rebuilt PDFs from the registry.

Exports only read pipeline state. Both modes use included pages in
registry order and refuse to produce anything when no page is included.
"""

import logging
from pathlib import Path

import fitz  # PyMuPDF
import numpy as np

from snapocr.errors import ExportError, ExportPreconditionError
from snapocr.models import Page
from snapocr.pipeline.stage_preprocess import prepare
from snapocr.storage import PageRegistry

logger = logging.getLogger(__name__)

EMPTY_TEXT_PLACEHOLDER = "(No Text extracted)"
PAGE_DELIMITER = "\n" + "=" * 20 + "\n\n"


def _included_pages(registry: PageRegistry) -> tuple[Page, ...]:
    pages = registry.included()
    if not pages:
        raise ExportPreconditionError("No pages to export.")
    return pages


def format_page_text(page: Page) -> str:
    """Render one page's block of the text export."""
    parts = [
        f"--- {page.name} ---\n",
        f"[Original]\n{page.recognized_text or EMPTY_TEXT_PLACEHOLDER}\n\n",
    ]
    if page.translated_text:
        parts.append(f"[Translation]\n{page.translated_text}\n\n")
    parts.append(PAGE_DELIMITER)
    return "".join(parts)


def export_text(registry: PageRegistry) -> str:
    """Concatenate recognized (and translated) text of included pages.

    Raises:
        ExportPreconditionError: If no page is included.
    """
    pages = _included_pages(registry)
    return "".join(format_page_text(page) for page in pages)


def _add_image_page(pdf_doc: fitz.Document, page: Page) -> None:
    bitmap = np.ascontiguousarray(prepare(page.bitmap, page.rotation, enhanced=False))
    height, width = bitmap.shape[:2]

    pixmap = fitz.Pixmap(fitz.csRGB, width, height, bitmap.tobytes(), 0)
    # One pixel per point, image covers the whole page
    pdf_page = pdf_doc.new_page(width=width, height=height)
    pdf_page.insert_image(pdf_page.rect, pixmap=pixmap)


def export_pdf(registry: PageRegistry) -> bytes:
    """Rebuild an image-only PDF from included pages.

    Every page is sized to its rotated bitmap. No text layer is embedded.
    A failure on any page aborts the whole export.

    Raises:
        ExportPreconditionError: If no page is included.
        ExportError: If a page could not be embedded.
    """
    pages = _included_pages(registry)

    pdf_doc = fitz.open()
    try:
        for page in pages:
            try:
                _add_image_page(pdf_doc, page)
            except (RuntimeError, ValueError) as exc:
                raise ExportError(f"Failed to embed page {page.id} ({page.name}): {exc}") from exc
        data = pdf_doc.tobytes(garbage=3, deflate=True)
    finally:
        pdf_doc.close()

    logger.info("Built PDF with %d page(s)", len(pages))
    return data


def write_text_export(registry: PageRegistry, output_path: Path) -> Path:
    """Write the text export as UTF-8. Nothing is written on failure."""
    content = export_text(registry)
    output_path = Path(output_path)
    output_path.write_text(content, encoding="utf-8")
    return output_path


def write_pdf_export(registry: PageRegistry, output_path: Path) -> Path:
    """Write the rebuilt PDF. Nothing is written on failure."""
    data = export_pdf(registry)
    output_path = Path(output_path)
    output_path.write_bytes(data)
    return output_path
