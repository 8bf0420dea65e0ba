"""Base models and common types for SnapOCR."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SourceKind(str, Enum):
    """Where a page came from. Informational only."""

    IMAGE = "image"
    DOCUMENT_PAGE = "document_page"


class PageStatus(str, Enum):
    """Lifecycle state of a page in the pipeline."""

    READY = "ready"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class Orientation(int, Enum):
    """Clockwise page rotation in degrees."""

    DEG_0 = 0
    DEG_90 = 90
    DEG_180 = 180
    DEG_270 = 270


class BaseIRModel(BaseModel):
    """Base class for pipeline models with common timestamps."""

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def touch(self) -> None:
        """Refresh the modification timestamp."""
        self.updated_at = datetime.utcnow()
