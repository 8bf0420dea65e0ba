"""Page-level models."""

from typing import Optional

import numpy as np
from pydantic import Field, field_validator

from .base import BaseIRModel, Orientation, PageStatus, SourceKind


class Page(BaseIRModel):
    """
    Single unit of work: one image, or one page of a multi-page document.

    The bitmap is the canonical raster produced at ingestion. It is frozen
    (read-only array) and never replaced; preprocessing derives new bitmaps.
    """

    id: int = Field(..., ge=1, description="Registry-assigned, never reused")
    name: str = Field(..., description="Display label")
    source_kind: SourceKind = Field(default=SourceKind.IMAGE)
    bitmap: np.ndarray = Field(..., repr=False, description="H x W x 3 uint8 RGB")

    # User-controlled
    rotation: int = Field(default=0, description="Clockwise degrees (0, 90, 180, 270)")
    is_included: bool = Field(default=True)

    # Results
    recognized_text: str = Field(default="")
    translated_text: str = Field(default="")
    ocr_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)

    # Processing state
    status: PageStatus = Field(default=PageStatus.READY)
    error_message: Optional[str] = None

    class Config:
        arbitrary_types_allowed = True
        validate_assignment = True

    @field_validator("rotation")
    @classmethod
    def _check_rotation(cls, value: int) -> int:
        return Orientation(value).value

    @field_validator("bitmap")
    @classmethod
    def _freeze_bitmap(cls, value: np.ndarray) -> np.ndarray:
        if value.ndim != 3 or value.shape[2] != 3 or value.dtype != np.uint8:
            raise ValueError("bitmap must be an H x W x 3 uint8 array")
        if value.flags.writeable:
            # Keep the caller's array usable; the page owns a frozen copy
            value = value.copy()
            value.flags.writeable = False
        return value

    @property
    def width(self) -> int:
        """Bitmap width in pixels (before rotation)."""
        return int(self.bitmap.shape[1])

    @property
    def height(self) -> int:
        """Bitmap height in pixels (before rotation)."""
        return int(self.bitmap.shape[0])

    @property
    def has_text(self) -> bool:
        """Check if OCR text is present (user-edited or recognized)."""
        return self.recognized_text != ""

    @property
    def is_settled(self) -> bool:
        """Check if page is not mid-flight."""
        return self.status != PageStatus.PROCESSING

    def mark_processing(self) -> None:
        """Mark page as being worked on by the orchestrator."""
        self.status = PageStatus.PROCESSING
        self.error_message = None
        self.touch()

    def mark_done(self, text: str, confidence: Optional[float] = None) -> None:
        """Store OCR result and mark page as done."""
        self.recognized_text = text
        self.ocr_confidence = confidence
        self.status = PageStatus.DONE
        self.touch()

    def mark_failed(self, error: str) -> None:
        """Mark page as failed with error message."""
        self.status = PageStatus.ERROR
        self.error_message = error
        self.touch()

    def reset(self) -> None:
        """Explicit reset: drop results so the next run picks the page up again."""
        self.recognized_text = ""
        self.translated_text = ""
        self.ocr_confidence = None
        self.error_message = None
        self.status = PageStatus.READY
        self.touch()


def needs_recognition(page: Page) -> bool:
    """Batch eligibility: included and no recognized text yet.

    Status is deliberately ignored. A page whose text was typed in by hand is
    treated as complete, and a page that errored earlier is retried.
    """
    return page.is_included and not page.recognized_text
