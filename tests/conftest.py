"""Shared test fixtures for the listing OCR test suite."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from listing_ocr.utils.config import AppConfig


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def png_bytes() -> bytes:
    """Encode a small white RGB image as PNG."""
    buf = io.BytesIO()
    Image.fromarray(np.full((60, 80, 3), 255, dtype=np.uint8)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def app_config() -> AppConfig:
    """Default configuration with a small worker pool."""
    config = AppConfig()
    config.ocr.pool_size = 2
    return config


@pytest.fixture
def listing_text() -> str:
    """Recognized text of a typical two-row stock listing."""
    return (
        "SKU         Description            Qty   Bin\n"
        "SKU-100     Red Wine Bottle        12    A1-B2\n"
        "SKU-200     Green Tea Tin          3     C4\n"
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
