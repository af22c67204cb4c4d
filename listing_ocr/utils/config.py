"""Configuration management for the listing OCR pipeline.

Loads and validates YAML configuration with typed defaults for
preprocessing, the recognition worker pool, text normalization,
extraction strategies, and record validation.
"""

import logging
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from listing_ocr.models import Strategy

logger = logging.getLogger(__name__)

DEFAULT_CHAR_WHITELIST = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.,()&+#'\"/"
)


class PreprocessingConfig(BaseModel):
    """Configuration for the bitmap preprocessing pipeline."""

    scale_enabled: bool = True
    target_dimension: int = Field(default=1200, gt=0)
    max_scale: float = Field(default=3.0, gt=0.0)
    binarize_enabled: bool = True
    local_window_radius: int = Field(default=20, ge=1)
    local_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    sharpen_enabled: bool = True
    denoise_enabled: bool = True
    median_radius: int = Field(default=2, ge=1, le=10)
    section_count: int = Field(default=4, ge=1)


class OCRConfig(BaseModel):
    """Tesseract tuning shared by every worker in the recognition pool.

    ``engine_mode`` is Tesseract's OEM (1 = LSTM only) and
    ``page_segmentation_mode`` its PSM (4 = a single column of text of
    variable sizes). Dictionary bias is off by default because SKUs and
    bin codes are not words.
    """

    tesseract_cmd: str | None = None
    language: str = "eng"
    pool_size: int = Field(default=4, ge=1, le=32)
    engine_mode: int = Field(default=1, ge=0, le=3)
    page_segmentation_mode: int = Field(default=4, ge=0, le=13)
    char_whitelist: str = DEFAULT_CHAR_WHITELIST
    preserve_interword_spaces: bool = True
    heavy_noise_removal: bool = True
    dictionary_enabled: bool = False

    @field_validator("language")
    @classmethod
    def _check_language(cls, value: str) -> str:
        if not re.fullmatch(r"[a-z_]+(\+[a-z_]+)*", value):
            raise ValueError(f"Invalid Tesseract language string: {value!r}")
        return value

    @field_validator("char_whitelist")
    @classmethod
    def _check_whitelist(cls, value: str) -> str:
        if not value:
            raise ValueError("Character whitelist must not be empty")
        if any(ch.isspace() for ch in value):
            raise ValueError("Character whitelist must not contain whitespace")
        return value


class NormalizationConfig(BaseModel):
    """Configuration for OCR text cleanup."""

    min_line_length: int = Field(default=3, ge=1)
    preserve_column_gaps: bool = True
    correct_z_to_two: bool = False


class ExtractionConfig(BaseModel):
    """Configuration for the multi-strategy extractor.

    Strategies always run in the canonical order; this list only selects
    which of them are enabled.
    """

    strategies: list[Strategy] = Field(default_factory=lambda: list(Strategy))
    run_concurrently: bool = False

    @field_validator("strategies")
    @classmethod
    def _check_strategies(cls, value: list[Strategy]) -> list[Strategy]:
        if not value:
            raise ValueError("At least one extraction strategy must be enabled")
        return [s for s in Strategy if s in value]


class ValidationConfig(BaseModel):
    """Schema rules applied to candidate records."""

    min_name_length: int = Field(default=3, ge=1)
    sku_pattern: str = r"^[A-Za-z0-9-]+$"
    location_pattern: str = r"^[A-Z][0-9]"

    @field_validator("sku_pattern", "location_pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid regular expression {value!r}: {exc}") from exc
        return value


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
