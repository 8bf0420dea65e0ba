"""Rasterization Stage - Convert source files into canonical bitmaps.

Images are decoded with Pillow, PDF pages are rendered with PyMuPDF (fitz).
Every bitmap leaves this module as an H x W x 3 uint8 RGB numpy array.
"""

import io
from typing import Optional

import fitz  # PyMuPDF
import numpy as np
from PIL import Image, UnidentifiedImageError

from snapocr.config import settings
from snapocr.errors import DecodeError


def pixmap_to_array(pixmap: fitz.Pixmap) -> np.ndarray:
    """Convert an RGB PyMuPDF pixmap into an H x W x 3 array.

    Args:
        pixmap: Pixmap rendered without alpha.

    Returns:
        Contiguous uint8 array owning its memory.
    """
    if pixmap.n != 3:
        pixmap = fitz.Pixmap(fitz.csRGB, pixmap)
    buffer = np.frombuffer(pixmap.samples, dtype=np.uint8)
    # Rows may be padded past width * 3
    rows = buffer.reshape(pixmap.height, pixmap.stride)
    return rows[:, : pixmap.width * 3].reshape(pixmap.height, pixmap.width, 3).copy()


def image_to_array(image: Image.Image) -> np.ndarray:
    """Flatten any Pillow image mode to RGB and return it as an array."""
    if image.mode in ("RGBA", "LA", "P"):
        # Composite transparency onto white, like a browser canvas export
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        image = Image.alpha_composite(background, rgba)
    return np.array(image.convert("RGB"), dtype=np.uint8)


class Rasterizer:
    """Turns raw source bytes into canonical bitmaps.

    Stateless apart from the PDF render scale, so one instance can serve a
    whole session.
    """

    def __init__(self, pdf_scale: Optional[float] = None):
        """Initialize rasterizer.

        Args:
            pdf_scale: Zoom applied to PDF pages (default from settings, 1.5).
        """
        self.pdf_scale = pdf_scale or settings.pdf_render_scale

    def page_count(self, source: bytes) -> int:
        """Count pages in a PDF.

        Raises:
            DecodeError: If the bytes are not a readable PDF.
        """
        pdf_doc = self._open_pdf(source)
        try:
            return len(pdf_doc)
        finally:
            pdf_doc.close()

    def rasterize(self, source: bytes, page_index: Optional[int] = None) -> np.ndarray:
        """Render one input unit to a bitmap.

        Args:
            source: Raw file bytes.
            page_index: 0-indexed PDF page, or None for a single image.

        Returns:
            H x W x 3 uint8 RGB array.

        Raises:
            DecodeError: On malformed input or an out-of-range page.
        """
        if page_index is None:
            return self._decode_image(source)
        return self.render_pdf_pages(source, [page_index])[0]

    def render_pdf_pages(
        self,
        source: bytes,
        page_indices: Optional[list[int]] = None,
    ) -> list[np.ndarray]:
        """Render several PDF pages with one open document.

        Args:
            source: Raw PDF bytes.
            page_indices: 0-indexed pages to render (default: all).

        Returns:
            One bitmap per requested page, in request order.
        """
        pdf_doc = self._open_pdf(source)
        try:
            if page_indices is None:
                page_indices = list(range(len(pdf_doc)))

            matrix = fitz.Matrix(self.pdf_scale, self.pdf_scale)
            bitmaps = []
            for index in page_indices:
                if not 0 <= index < len(pdf_doc):
                    raise DecodeError(
                        f"Page index {index} out of range (document has {len(pdf_doc)} pages)"
                    )
                try:
                    pixmap = pdf_doc[index].get_pixmap(matrix=matrix, alpha=False)
                except RuntimeError as exc:
                    raise DecodeError(f"Failed to render page {index + 1}: {exc}") from exc
                bitmaps.append(pixmap_to_array(pixmap))
            return bitmaps
        finally:
            pdf_doc.close()

    def _open_pdf(self, source: bytes) -> fitz.Document:
        try:
            pdf_doc = fitz.open(stream=source, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as exc:
            raise DecodeError(f"Malformed PDF: {exc}") from exc

        if len(pdf_doc) == 0:
            pdf_doc.close()
            raise DecodeError("PDF has no pages")
        return pdf_doc

    def _decode_image(self, source: bytes) -> np.ndarray:
        try:
            with Image.open(io.BytesIO(source)) as image:
                image.load()
                return image_to_array(image)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise DecodeError(f"Malformed image: {exc}") from exc
