"""OCR Stage - Extract text from prepared page bitmaps.

The orchestrator talks to an OCREngine: acquire a handle once per run,
recognize pages one after another with it, release it at the end. The
Tesseract implementation wraps pytesseract and runs it off the event loop.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np
import pytesseract
from PIL import Image
from pydantic import BaseModel, Field

from snapocr.config import settings
from snapocr.errors import EngineError, RecognitionError

logger = logging.getLogger(__name__)

# Language used when the user asks for automatic detection
AUTO_LANGUAGE_FALLBACK = "eng"


def resolve_language(language: Optional[str]) -> str:
    """Map the user-facing language choice to an engine language code."""
    if not language or language == "auto":
        return AUTO_LANGUAGE_FALLBACK
    return language


class RecognitionResult(BaseModel):
    """Text recognized on one page."""

    text: str
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class EngineHandle(BaseModel):
    """Initialized engine context, valid for one batch run."""

    engine: str
    language: str
    version: Optional[str] = None
    released: bool = False


class OCREngine(ABC):
    """OCR capability consumed by the batch orchestrator.

    One handle is shared by every page of a run and is not safe for
    concurrent use.
    """

    @abstractmethod
    async def initialize(self, language: str) -> EngineHandle:
        """Start the engine for a language.

        Raises:
            EngineError: If the engine cannot start.
        """

    @abstractmethod
    async def recognize(self, handle: EngineHandle, bitmap: np.ndarray) -> RecognitionResult:
        """Recognize text on one bitmap.

        Raises:
            RecognitionError: If this page could not be recognized.
            EngineError: If the engine itself became unusable.
        """

    async def release(self, handle: EngineHandle) -> None:
        """Free the engine context. Safe to call more than once."""
        handle.released = True


def assemble_text(data: dict) -> tuple[str, Optional[float]]:
    """Rebuild line-broken text from pytesseract image_to_data output.

    Args:
        data: Dict output of pytesseract.image_to_data.

    Returns:
        Tuple of (text, mean word confidence in 0-1 or None).
    """
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences = []

    for i, word in enumerate(data["text"]):
        word = (word or "").strip()
        conf = float(data["conf"][i])
        # conf -1 marks layout rows (blocks, paragraphs) with no text
        if not word or conf < 0:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        confidences.append(conf / 100.0)

    text_lines = []
    previous_block = None
    for (block_num, par_num, _), words in lines.items():
        if previous_block is not None and (block_num, par_num) != previous_block:
            text_lines.append("")
        text_lines.append(" ".join(words))
        previous_block = (block_num, par_num)

    confidence = sum(confidences) / len(confidences) if confidences else None
    return "\n".join(text_lines), confidence


class TesseractOCR(OCREngine):
    """OCR engine using Tesseract through pytesseract."""

    def __init__(
        self,
        psm: Optional[int] = None,
        oem: Optional[int] = None,
        config: Optional[str] = None,
    ):
        """Initialize Tesseract OCR.

        Args:
            psm: Page segmentation mode (3 = fully automatic).
            oem: OCR Engine mode (3 = default, based on what's available).
            config: Additional Tesseract config string.
        """
        self.psm = psm if psm is not None else settings.tesseract_psm
        self.oem = oem if oem is not None else settings.tesseract_oem
        self.config = config or ""

    def _build_config(self) -> str:
        """Build Tesseract configuration string."""
        config_parts = [
            f"--psm {self.psm}",
            f"--oem {self.oem}",
        ]
        if self.config:
            config_parts.append(self.config)
        return " ".join(config_parts)

    async def initialize(self, language: str) -> EngineHandle:
        language = resolve_language(language)
        return await asyncio.to_thread(self._initialize_sync, language)

    def _initialize_sync(self, language: str) -> EngineHandle:
        try:
            version = pytesseract.get_tesseract_version()
            available = set(pytesseract.get_languages(config=""))
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, OSError) as exc:
            raise EngineError(f"Tesseract is not available: {exc}") from exc

        missing = [code for code in language.split("+") if code not in available]
        if missing:
            raise EngineError(f"Tesseract language data not installed: {', '.join(missing)}")

        logger.info("Tesseract %s ready for '%s'", version, language)
        return EngineHandle(engine="tesseract", language=language, version=str(version))

    async def recognize(self, handle: EngineHandle, bitmap: np.ndarray) -> RecognitionResult:
        if handle.released:
            raise EngineError("Engine handle used after release")
        return await asyncio.to_thread(self._recognize_sync, handle, bitmap)

    def _recognize_sync(self, handle: EngineHandle, bitmap: np.ndarray) -> RecognitionResult:
        pil_image = Image.fromarray(bitmap)

        try:
            data = pytesseract.image_to_data(
                pil_image,
                lang=handle.language,
                config=self._build_config(),
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractNotFoundError as exc:
            raise EngineError(f"Tesseract disappeared mid-run: {exc}") from exc
        except (pytesseract.TesseractError, RuntimeError) as exc:
            raise RecognitionError(str(exc)) from exc

        text, confidence = assemble_text(data)
        return RecognitionResult(text=text, confidence=confidence)
