"""Page pipeline stages for SnapOCR.

Stages, in data-flow order:
1. stage_render - Source bytes (image / PDF page) to canonical bitmap
2. ingest - Files to registered pages
3. stage_preprocess - Rotation and binarization
4. stage_ocr - Text recognition (Tesseract)
5. stage_translate - Optional translation (LibreTranslate API)
6. orchestrator - Sequential batch run over eligible pages
7. stage_export - Text bundle and rebuilt PDF
"""

from .ingest import IngestFailure, IngestReport, Ingestor
from .orchestrator import BatchOrchestrator, ProgressTracker, RunObserver, RunOptions
from .stage_export import export_pdf, export_text, write_pdf_export, write_text_export
from .stage_ocr import EngineHandle, OCREngine, RecognitionResult, TesseractOCR
from .stage_preprocess import binarize, next_rotation, prepare, rotate_clockwise
from .stage_render import Rasterizer
from .stage_translate import LibreTranslateClient, Translator, translation_enabled

__all__ = [
    # Render
    "Rasterizer",
    # Ingestion
    "Ingestor",
    "IngestReport",
    "IngestFailure",
    # Preprocess
    "prepare",
    "rotate_clockwise",
    "binarize",
    "next_rotation",
    # OCR
    "OCREngine",
    "EngineHandle",
    "RecognitionResult",
    "TesseractOCR",
    # Translation
    "Translator",
    "LibreTranslateClient",
    "translation_enabled",
    # Orchestration
    "BatchOrchestrator",
    "ProgressTracker",
    "RunObserver",
    "RunOptions",
    # Export
    "export_text",
    "export_pdf",
    "write_text_export",
    "write_pdf_export",
]
