"""Translation Stage - Translate recognized page text.

Translation is best-effort: a failure is recorded on the page and never
changes its OCR status.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from snapocr.config import settings
from snapocr.errors import TranslationError

logger = logging.getLogger(__name__)

# Target value that switches the translation step off
NO_TRANSLATION = "none"


def translation_enabled(target: Optional[str]) -> bool:
    """Check if a configured target language asks for translation."""
    return bool(target) and target.lower() != NO_TRANSLATION


class Translator(ABC):
    """Translation capability consumed by the batch orchestrator."""

    @abstractmethod
    async def translate(self, text: str, target_language: str) -> str:
        """Translate text into the target language.

        Raises:
            TranslationError: If the text could not be translated.
        """

    async def aclose(self) -> None:
        """Release network resources."""


class LibreTranslateClient(Translator):
    """Client for a LibreTranslate-compatible HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize client.

        Args:
            base_url: Server root, e.g. 'http://localhost:5000'.
            api_key: Optional API key sent with every request.
            timeout: Request timeout in seconds.
            client: Pre-built httpx client (tests inject a mock transport).
        """
        self.base_url = (base_url or settings.translate_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.translate_api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.translate_timeout,
            follow_redirects=True,
        )

    async def translate(self, text: str, target_language: str) -> str:
        if not text.strip():
            return ""

        payload = {
            "q": text,
            "source": "auto",
            "target": target_language,
            "format": "text",
        }
        if self.api_key:
            payload["api_key"] = self.api_key

        try:
            response = await self._client.post(f"{self.base_url}/translate", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise TranslationError(
                f"Translation service returned {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise TranslationError(f"Translation request failed: {exc}") from exc

        translated = body.get("translatedText") if isinstance(body, dict) else None
        if not isinstance(translated, str):
            raise TranslationError("Translation service response has no translatedText")
        return translated

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
