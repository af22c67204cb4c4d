"""Resolution normalization ahead of OCR.

Low-resolution phone captures are enlarged toward a target dimension,
with a cap on the factor to keep memory bounded.
"""

import cv2
import numpy as np

from listing_ocr.utils.logger import get_logger

logger = get_logger(__name__)


def compute_scale_factor(
    width: int, height: int, target_dimension: int = 1200, max_scale: float = 3.0
) -> float:
    """Scale factor bringing the image toward ``target_dimension``.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        target_dimension: Desired size of the scaled image.
        max_scale: Upper bound on the factor.

    Returns:
        ``min(max_scale, max(target / width, target / height))``.
    """
    return min(max_scale, max(target_dimension / width, target_dimension / height))


def scale_image(image: np.ndarray, factor: float) -> np.ndarray:
    """Resample an image by ``factor`` in both dimensions.

    Args:
        image: Input image as a numpy array.
        factor: Scale factor; 1.0 returns the image unchanged.

    Returns:
        Resampled image.
    """
    if factor == 1.0:
        return image

    h, w = image.shape[:2]
    new_size = (max(1, round(w * factor)), max(1, round(h * factor)))
    interpolation = cv2.INTER_CUBIC if factor > 1.0 else cv2.INTER_AREA
    result = cv2.resize(image, new_size, interpolation=interpolation)
    logger.debug("Scaled %dx%d image by %.2f to %dx%d", w, h, factor, *new_size)
    return result
