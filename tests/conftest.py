"""Pytest configuration and fixtures."""

import asyncio
import io

import fitz
import numpy as np
import pytest
from PIL import Image

from snapocr.errors import EngineError, RecognitionError, TranslationError
from snapocr.models import SourceKind
from snapocr.pipeline.orchestrator import RunObserver
from snapocr.pipeline.stage_ocr import EngineHandle, OCREngine, RecognitionResult
from snapocr.pipeline.stage_translate import Translator
from snapocr.storage import PageRegistry


def make_bitmap(height: int = 2, width: int = 3) -> np.ndarray:
    """Small RGB bitmap with distinct pixel values."""
    return (np.arange(height * width * 3) % 256).astype(np.uint8).reshape(height, width, 3)


class FakeEngine(OCREngine):
    """Scripted OCR engine.

    fail_on / fatal_on hold 1-based recognize call numbers.
    """

    def __init__(self, fail_on=(), fatal_on=(), fail_init=False, text=None):
        self.fail_on = set(fail_on)
        self.fatal_on = set(fatal_on)
        self.fail_init = fail_init
        self.text = text
        self.languages = []
        self.bitmaps = []
        self.handles = []

    async def initialize(self, language):
        if self.fail_init:
            raise EngineError("engine would not start")
        self.languages.append(language)
        handle = EngineHandle(engine="fake", language=language)
        self.handles.append(handle)
        return handle

    async def recognize(self, handle, bitmap):
        self.bitmaps.append(bitmap)
        call = len(self.bitmaps)
        await asyncio.sleep(0)
        if call in self.fatal_on:
            raise EngineError("engine crashed")
        if call in self.fail_on:
            raise RecognitionError(f"unreadable page on call {call}")
        return RecognitionResult(text=self.text or f"text {call}", confidence=0.9)


class FakeTranslator(Translator):
    """Prefixes text with the target language; optionally fails."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def translate(self, text, target_language):
        self.calls.append((text, target_language))
        if self.fail:
            raise TranslationError("service unavailable")
        return f"[{target_language.upper()}] {text}"


class RecordingObserver(RunObserver):
    """Collects every observation."""

    def __init__(self):
        self.progress = []
        self.statuses = []
        self.failures = []

    def on_status_changed(self, page):
        self.statuses.append((page.id, page.status))

    def on_progress(self, progress):
        self.progress.append(progress)

    def on_page_failed(self, page, stage, error):
        self.failures.append((page.id, stage))


@pytest.fixture
def registry():
    """Empty page registry."""
    return PageRegistry()


@pytest.fixture
def filled_registry(registry):
    """Registry with three image pages."""
    for name in ("a.png", "b.png", "c.png"):
        registry.create(name, SourceKind.IMAGE, make_bitmap())
    return registry


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def png_bytes():
    """4x3 RGB PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (4, 3), (10, 20, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def pdf_bytes():
    """Two-page PDF, 100 x 50 points per page."""
    pdf_doc = fitz.open()
    for _ in range(2):
        pdf_doc.new_page(width=100, height=50)
    data = pdf_doc.tobytes()
    pdf_doc.close()
    return data
