"""Edge sharpening with a 3x3 Laplacian-style kernel."""

import cv2
import numpy as np

from listing_ocr.utils.logger import get_logger

logger = get_logger(__name__)

SHARPEN_KERNEL = np.array(
    [
        [-1, -1, -1],
        [-1, 9, -1],
        [-1, -1, -1],
    ],
    dtype=np.float32,
)


def sharpen(image: np.ndarray) -> np.ndarray:
    """Convolve each channel with :data:`SHARPEN_KERNEL`, clamped to [0, 255].

    The one-pixel border is copied unchanged.

    Args:
        image: ``uint8`` image, grayscale or multi-channel.

    Returns:
        Sharpened image with the same shape and dtype.
    """
    h, w = image.shape[:2]
    if h < 3 or w < 3:
        return image.copy()

    convolved = cv2.filter2D(image.astype(np.float32), -1, SHARPEN_KERNEL)
    clamped = np.clip(convolved, 0, 255).astype(np.uint8)
    result = image.copy()
    result[1:-1, 1:-1] = clamped[1:-1, 1:-1]
    logger.debug("Applied sharpening to %dx%d image", w, h)
    return result
