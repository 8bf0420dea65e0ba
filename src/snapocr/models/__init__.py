"""Pipeline models for SnapOCR.

Pydantic models for the data flowing through the page pipeline:

- Page: one unit of work (image or PDF page) with its bitmap and results
- RunSummary: outcome and tallies of a single batch run
"""

from .base import (
    BaseIRModel,
    Orientation,
    PageStatus,
    SourceKind,
)
from .page import (
    Page,
    needs_recognition,
)
from .run import (
    PageFailure,
    RunOutcome,
    RunSummary,
)

__all__ = [
    # Base types
    "BaseIRModel",
    "Orientation",
    "PageStatus",
    "SourceKind",
    # Page
    "Page",
    "needs_recognition",
    # Run
    "PageFailure",
    "RunOutcome",
    "RunSummary",
]
