"""Storage layer for SnapOCR.

Session-local, in-memory page storage.
"""

from .registry import PageRegistry

__all__ = [
    "PageRegistry",
]
