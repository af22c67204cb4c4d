"""Bitmap preprocessing pipeline for listing OCR.

Decodes an uploaded image, then scales, converts to grayscale, binarizes,
sharpens, and denoises it before splitting the bitmap into horizontal
sections for the recognition worker pool.
"""

import io

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from listing_ocr.errors import DecodeError
from listing_ocr.models import (
    SUPPORTED_MIME_TYPES,
    PreprocessingResult,
    QualityMetrics,
    RawImage,
    Section,
)
from listing_ocr.utils.config import PreprocessingConfig
from listing_ocr.utils.logger import get_logger

from .binarize import binarize_adaptive, otsu_threshold, to_grayscale
from .denoise import median_denoise
from .scale import compute_scale_factor, scale_image
from .sharpen import sharpen

logger = get_logger(__name__)


def decode_image(image: RawImage) -> np.ndarray:
    """Decode an uploaded image into an RGB array.

    Transparent regions are composited onto white.

    Args:
        image: Raw upload.

    Returns:
        ``uint8`` array of shape ``(h, w, 3)``.

    Raises:
        DecodeError: If the MIME type is unsupported or the bytes are not
            a readable image.
    """
    mime_type = image.mime_type.lower()
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise DecodeError(f"Unsupported image type: {image.mime_type}", mime_type)
    if not image.data:
        raise DecodeError(f"Empty image payload: {image.filename}", mime_type)

    try:
        with Image.open(io.BytesIO(image.data)) as pil_image:
            pil_image.load()
            if pil_image.mode in ("RGBA", "LA") or "transparency" in pil_image.info:
                rgba = pil_image.convert("RGBA")
                canvas = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
                canvas.alpha_composite(rgba)
                rgb = canvas.convert("RGB")
            else:
                rgb = pil_image.convert("RGB")
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        SyntaxError,
        ValueError,
    ) as exc:
        raise DecodeError(
            f"Could not decode image {image.filename}: {exc}", mime_type
        ) from exc

    array = np.array(rgb, dtype=np.uint8)
    if array.shape[0] == 0 or array.shape[1] == 0:
        raise DecodeError(f"Image has no pixels: {image.filename}", mime_type)
    logger.debug(
        "Decoded %s (%s) at %dx%d",
        image.filename,
        mime_type,
        array.shape[1],
        array.shape[0],
    )
    return array


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY) if image.ndim == 3 else image
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate contrast as the standard deviation of pixel intensities."""
    gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY) if image.ndim == 3 else image
    return float(gray.std())


def split_sections(bitmap: np.ndarray, count: int) -> list[Section]:
    """Partition a bitmap into ``count`` horizontal bands.

    Each nominal cut row is moved to the row with the least ink (fewest
    dark pixels) within a quarter band of it, so cuts tend to fall between
    text lines. Bands never overlap and together cover every row.

    Args:
        bitmap: Bitmap to split.
        count: Desired number of sections; reduced when the bitmap has
            fewer rows.

    Returns:
        Sections ordered by index, top to bottom.
    """
    height = bitmap.shape[0]
    count = max(1, min(count, height))
    if count == 1:
        return [Section(index=0, top=0, bitmap=bitmap)]

    gray = bitmap if bitmap.ndim == 2 else to_grayscale(bitmap)
    ink = (gray < 128).sum(axis=1)
    band = height / count
    slack = int(band // 4)

    cuts = [0]
    for i in range(1, count):
        nominal = round(i * band)
        lo = max(cuts[-1] + 1, nominal - slack)
        hi = min(height - (count - i), nominal + slack)
        if lo > hi:
            cut = max(cuts[-1] + 1, min(nominal, height - (count - i)))
        else:
            window = ink[lo:hi + 1]
            candidates = np.flatnonzero(window == window.min()) + lo
            cut = int(candidates[np.argmin(np.abs(candidates - nominal))])
        cuts.append(cut)
    cuts.append(height)

    return [
        Section(index=i, top=top, bitmap=bitmap[top:bottom])
        for i, (top, bottom) in enumerate(zip(cuts[:-1], cuts[1:]))
    ]


class PreprocessingPipeline:
    """Configurable bitmap preprocessing pipeline.

    Steps run strictly in order: scale, grayscale, adaptive threshold,
    sharpen, median denoise, then sectioning. Decoding is the only step
    that can fail.

    Args:
        config: Preprocessing configuration controlling which steps to apply.
    """

    def __init__(self, config: PreprocessingConfig) -> None:
        self.config = config

    def process(self, image: RawImage) -> PreprocessingResult:
        """Decode and enhance an uploaded image.

        Args:
            image: Raw upload.

        Returns:
            Sections ready for recognition plus quality metrics.

        Raises:
            DecodeError: If the image cannot be decoded.
        """
        rgb = decode_image(image)
        return self.process_array(rgb)

    def process_array(self, rgb: np.ndarray) -> PreprocessingResult:
        """Run every enhancement step on an already decoded image."""
        metrics = QualityMetrics(
            sharpness_before=calculate_sharpness(rgb),
            contrast_before=calculate_contrast(rgb),
            sharpness_after=0.0,
            contrast_after=0.0,
        )

        factor = 1.0
        result = rgb
        if self.config.scale_enabled:
            h, w = rgb.shape[:2]
            factor = compute_scale_factor(
                w, h, self.config.target_dimension, self.config.max_scale
            )
            result = scale_image(result, factor)

        result = to_grayscale(result)

        if self.config.binarize_enabled:
            result = binarize_adaptive(
                result,
                radius=self.config.local_window_radius,
                local_weight=self.config.local_weight,
                global_threshold=otsu_threshold(result),
            )

        if self.config.sharpen_enabled:
            result = sharpen(result)

        if self.config.denoise_enabled:
            result = median_denoise(result, radius=self.config.median_radius)

        metrics.sharpness_after = calculate_sharpness(result)
        metrics.contrast_after = calculate_contrast(result)

        sections = split_sections(result, self.config.section_count)
        logger.info(
            "Preprocessing complete: %dx%d (scale %.2f), %d sections, "
            "sharpness %.1f->%.1f, contrast %.1f->%.1f",
            result.shape[1],
            result.shape[0],
            factor,
            len(sections),
            metrics.sharpness_before,
            metrics.sharpness_after,
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return PreprocessingResult(
            sections=sections,
            width=int(result.shape[1]),
            height=int(result.shape[0]),
            scale=factor,
            metrics=metrics,
        )
