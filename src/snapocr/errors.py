"""Exception taxonomy for the page pipeline.

Page-scoped errors (RecognitionError, TranslationError) are recorded on the
page they belong to and never abort sibling work. EngineError is run-fatal.
"""


class SnapOCRError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(SnapOCRError):
    """A source file could not be turned into pages."""

    def __init__(self, message: str, source_name: str = ""):
        super().__init__(message)
        self.source_name = source_name


class UnsupportedFileError(DecodeError):
    """Source file is neither an image nor a PDF."""


class FileTooLargeError(DecodeError):
    """Source file exceeds the configured size limit."""


class EngineError(SnapOCRError):
    """OCR engine could not start (or died); fatal to the whole run."""


class RecognitionError(SnapOCRError):
    """OCR failed for a single page."""


class TranslationError(SnapOCRError):
    """Translation failed for a single page."""


class ExportPreconditionError(SnapOCRError):
    """Nothing to export: no page is included."""


class ExportError(SnapOCRError):
    """Building an export artifact failed."""
