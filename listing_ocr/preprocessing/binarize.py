"""Grayscale conversion and thresholding for listing images.

Provides luma grayscale conversion, Otsu's global threshold selection,
and a local adaptive threshold that blends the neighborhood mean with
the global Otsu value to cope with uneven lighting.
"""

import numpy as np

from listing_ocr.utils.logger import get_logger

logger = get_logger(__name__)

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert an RGB image to 8-bit luma grayscale.

    Args:
        image: RGB image ``(h, w, 3)`` or an already grayscale ``(h, w)`` image.

    Returns:
        Grayscale image as ``uint8``.
    """
    if image.ndim == 2:
        return image.astype(np.uint8, copy=False)
    gray = image[..., :3].astype(np.float64) @ LUMA_WEIGHTS
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


def compute_histogram(gray: np.ndarray) -> np.ndarray:
    """Count gray values into 256 bins."""
    return np.bincount(gray.ravel(), minlength=256).astype(np.int64)


def otsu_threshold_from_histogram(histogram: np.ndarray) -> int:
    """Select the threshold that maximizes between-class variance.

    For every candidate ``t`` the background holds values ``<= t``. The
    between-class variance ``wB * wF * (mB - mF)**2`` is evaluated for all
    candidates at once. Bimodal images with an empty valley produce a flat
    run of maximal values; the midpoint of the first such run is returned
    so the cut sits between the two peaks rather than at the edge of the
    darker one.

    Args:
        histogram: 256-bin histogram of gray values.

    Returns:
        Threshold in ``[0, 255]``. Uniform images return their single value.
    """
    hist = np.asarray(histogram, dtype=np.float64)
    total = hist.sum()
    if total == 0:
        return 0

    levels = np.arange(hist.size, dtype=np.float64)
    weight_bg = np.cumsum(hist)
    weight_fg = total - weight_bg
    sum_bg = np.cumsum(levels * hist)
    sum_all = sum_bg[-1]

    with np.errstate(divide="ignore", invalid="ignore"):
        mean_bg = sum_bg / weight_bg
        mean_fg = (sum_all - sum_bg) / weight_fg
        variance = (weight_bg / total) * (weight_fg / total) * (mean_bg - mean_fg) ** 2
    variance[(weight_bg == 0) | (weight_fg == 0)] = 0.0

    best = variance.max()
    if best <= 0.0:
        return int(np.flatnonzero(hist)[0])

    is_max = np.isclose(variance, best, rtol=1e-12, atol=0.0)
    start = int(np.argmax(is_max))
    end = start
    while end + 1 < is_max.size and is_max[end + 1]:
        end += 1
    return (start + end) // 2


def otsu_threshold(gray: np.ndarray) -> int:
    """Compute Otsu's global threshold for a grayscale image."""
    threshold = otsu_threshold_from_histogram(compute_histogram(gray))
    logger.debug("Otsu global threshold: %d", threshold)
    return threshold


def local_mean(gray: np.ndarray, radius: int) -> np.ndarray:
    """Mean gray value of each pixel's ``(2r+1)**2`` neighborhood.

    Only in-bounds pixels are averaged, so border pixels use smaller
    windows instead of padded values.

    Args:
        gray: Grayscale image.
        radius: Window radius in pixels.

    Returns:
        Float array of local means with the same shape as ``gray``.
    """
    h, w = gray.shape
    integral = np.zeros((h + 1, w + 1), dtype=np.float64)
    integral[1:, 1:] = gray.astype(np.float64).cumsum(axis=0).cumsum(axis=1)

    rows = np.arange(h)
    cols = np.arange(w)
    y0 = np.clip(rows - radius, 0, h)[:, None]
    y1 = np.clip(rows + radius + 1, 0, h)[:, None]
    x0 = np.clip(cols - radius, 0, w)[None, :]
    x1 = np.clip(cols + radius + 1, 0, w)[None, :]

    sums = integral[y1, x1] - integral[y0, x1] - integral[y1, x0] + integral[y0, x0]
    counts = (y1 - y0) * (x1 - x0)
    return sums / counts


def binarize_adaptive(
    gray: np.ndarray,
    radius: int = 20,
    local_weight: float = 0.7,
    global_threshold: int | None = None,
) -> np.ndarray:
    """Binarize against a blend of local mean and global Otsu threshold.

    Args:
        gray: Grayscale image.
        radius: Neighborhood radius for the local mean.
        local_weight: Weight of the local mean; the global threshold gets
            the remainder.
        global_threshold: Precomputed global threshold. Computed with
            Otsu's method when omitted.

    Returns:
        Binary image with pixel values 0 or 255.
    """
    if global_threshold is None:
        global_threshold = otsu_threshold(gray)
    thresholds = local_weight * local_mean(gray, radius) + (
        1.0 - local_weight
    ) * float(global_threshold)
    result = np.where(gray > thresholds, 255, 0).astype(np.uint8)
    logger.debug(
        "Applied adaptive binarization (radius=%d, global=%d, weight=%.2f)",
        radius,
        global_threshold,
        local_weight,
    )
    return result
