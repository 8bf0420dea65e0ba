"""Configuration management for SnapOCR."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OCR
    ocr_language: str = "eng"
    enhanced_ocr: bool = False
    tesseract_psm: int = 3
    tesseract_oem: int = 3

    # Translation ("none" disables the translation step)
    translation_target: str = "none"
    translate_url: str = "http://localhost:5000"
    translate_api_key: Optional[str] = None
    translate_timeout: float = 30.0

    # Ingestion
    max_file_size_mb: int = 20
    pdf_render_scale: float = 1.5

    # Export
    text_export_filename: str = "ocr-translation-result.txt"
    pdf_export_filename: str = "scanned-doc.pdf"

    # Logging
    log_level: str = "INFO"

    @property
    def max_file_size_bytes(self) -> int:
        """Upper bound on accepted input file size."""
        return self.max_file_size_mb * 1024 * 1024

    class Config:
        env_prefix = "SNAPOCR_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
