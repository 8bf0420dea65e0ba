"""SnapOCR - batch OCR and translation pipeline for images and PDFs."""

__version__ = "0.1.0"
