"""In-memory page registry.

The registry is the single source of truth for pipeline state during a
session. Nothing is persisted; everything is lost when the session ends.
"""

import logging
from typing import Iterator, Optional

import numpy as np

from snapocr.models import Page, SourceKind, needs_recognition

logger = logging.getLogger(__name__)


class PageRegistry:
    """Ordered collection of pages keyed by a monotonically assigned id."""

    def __init__(self):
        self._pages: dict[int, Page] = {}
        self._next_id = 1

    def create(
        self,
        name: str,
        source_kind: SourceKind,
        bitmap: np.ndarray,
    ) -> Page:
        """Create a page and append it to the end of the registry.

        Args:
            name: Display label.
            source_kind: Provenance of the bitmap.
            bitmap: Canonical H x W x 3 uint8 raster. The page keeps a
                read-only copy; the caller's array is left as it was.

        Returns:
            The new page, status READY.
        """
        page = Page(
            id=self._next_id,
            name=name,
            source_kind=source_kind,
            bitmap=bitmap,
        )
        self._next_id += 1
        self._pages[page.id] = page
        logger.debug("Registered page %d (%s, %dx%d)", page.id, name, page.width, page.height)
        return page

    def get(self, page_id: int) -> Optional[Page]:
        """Get page by ID."""
        return self._pages.get(page_id)

    def remove(self, page_id: int) -> Optional[Page]:
        """Delete a page. Unknown ids are ignored.

        Returns:
            The removed page, or None if it was not registered.
        """
        page = self._pages.pop(page_id, None)
        if page is not None:
            logger.debug("Removed page %d (%s)", page_id, page.name)
        return page

    def clear(self) -> None:
        """Remove every page. Ids keep counting from where they were."""
        self._pages.clear()

    def all(self) -> tuple[Page, ...]:
        """Snapshot of all pages in insertion order.

        The tuple is detached from the registry, so callers can iterate it
        while pages are added or removed. The Page objects are live.
        """
        return tuple(self._pages.values())

    def included(self) -> tuple[Page, ...]:
        """Snapshot of pages with is_included set, in registry order."""
        return tuple(p for p in self._pages.values() if p.is_included)

    def eligible(self) -> tuple[Page, ...]:
        """Snapshot of pages a batch run would pick up right now."""
        return tuple(p for p in self._pages.values() if needs_recognition(p))

    def first(self) -> Optional[Page]:
        """First page in registry order, if any."""
        return next(iter(self._pages.values()), None)

    def __len__(self) -> int:
        return len(self._pages)

    def __iter__(self) -> Iterator[Page]:
        return iter(self.all())

    def __contains__(self, page_id: object) -> bool:
        return page_id in self._pages
