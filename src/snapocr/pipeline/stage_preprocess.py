"""Preprocessing Stage - Prepare a page bitmap for OCR or export.

Applies the user's clockwise rotation and, optionally, hard binarization.
Both steps are pure: the input array is never modified.
"""

import cv2
import numpy as np

from snapocr.models import Orientation

# Mean channel value above which a pixel becomes white
BINARIZE_THRESHOLD = 128

_CLOCKWISE_ROTATIONS = {
    Orientation.DEG_90: cv2.ROTATE_90_CLOCKWISE,
    Orientation.DEG_180: cv2.ROTATE_180,
    Orientation.DEG_270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def rotate_clockwise(image: np.ndarray, degrees: int) -> np.ndarray:
    """Rotate an image clockwise by a multiple of 90 degrees.

    Args:
        image: Image as numpy array.
        degrees: 0, 90, 180 or 270.

    Returns:
        New array. Width and height are swapped for 90 and 270.

    Raises:
        ValueError: If degrees is not one of the supported values.
    """
    orientation = Orientation(degrees)
    if orientation == Orientation.DEG_0:
        return image.copy()
    # OpenCV bindings reject read-only buffers on some builds
    if not image.flags.writeable:
        image = image.copy()
    return cv2.rotate(image, _CLOCKWISE_ROTATIONS[orientation])


def binarize(image: np.ndarray) -> np.ndarray:
    """Force every pixel to pure black or pure white.

    The decision uses the mean of the three colour channels; no dithering.
    Already-binary input maps to itself.

    Args:
        image: H x W x 3 uint8 array.

    Returns:
        New H x W x 3 uint8 array containing only 0 and 255.
    """
    # mean > 128 without float rounding: sum > 3 * 128
    channel_sum = image[..., :3].sum(axis=2, dtype=np.uint16)
    mask = channel_sum > 3 * BINARIZE_THRESHOLD
    binary = np.where(mask, np.uint8(255), np.uint8(0)).astype(np.uint8)
    return np.repeat(binary[..., np.newaxis], 3, axis=2)


def prepare(bitmap: np.ndarray, rotation: int, enhanced: bool) -> np.ndarray:
    """Derive the bitmap actually handed to OCR (or to PDF export).

    Rotation is always applied before enhancement.

    Args:
        bitmap: Canonical page bitmap.
        rotation: Clockwise degrees (0, 90, 180, 270).
        enhanced: Apply hard binarization.

    Returns:
        New array; the input is left untouched.
    """
    prepared = rotate_clockwise(bitmap, rotation)
    if enhanced:
        prepared = binarize(prepared)
    return prepared


def next_rotation(current: int, step: int = 90) -> int:
    """Rotation after turning a page by step degrees clockwise."""
    return Orientation((current + step) % 360).value
