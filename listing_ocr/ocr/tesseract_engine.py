"""Tesseract OCR engine wrapper used by each recognition worker.

Each engine instance carries its own tuning, load state, and progress
callback, so the worker pool can treat engines as independent units.
"""

import shlex
from collections.abc import Callable

import numpy as np
import pytesseract
from PIL import Image
from pytesseract import TesseractError, TesseractNotFoundError

from listing_ocr.errors import RecognitionError
from listing_ocr.models import ProgressEvent, RecognizedText, Section
from listing_ocr.utils.config import OCRConfig
from listing_ocr.utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

RECOGNIZING_STATUS = "recognizing text"


def build_tesseract_config(config: OCRConfig) -> str:
    """Translate typed OCR settings into a Tesseract command-line string.

    Args:
        config: OCR tuning options.

    Returns:
        Config string for pytesseract's ``config`` argument.
    """
    dictionary = "1" if config.dictionary_enabled else "0"
    params = {
        "tessedit_char_whitelist": config.char_whitelist,
        "preserve_interword_spaces": "1" if config.preserve_interword_spaces else "0",
        "textord_heavy_nr": "1" if config.heavy_noise_removal else "0",
        "load_system_dawg": dictionary,
        "load_freq_dawg": dictionary,
    }
    parts = [f"--oem {config.engine_mode}", f"--psm {config.page_segmentation_mode}"]
    parts.extend(f"-c {shlex.quote(f'{key}={value}')}" for key, value in params.items())
    return " ".join(parts)


class TesseractEngine:
    """A single tuned Tesseract instance.

    Args:
        config: OCR tuning shared by the pool.
        worker_index: Position of this engine in its pool.
        progress_callback: Receives a :class:`ProgressEvent` as recognition
            of a section advances.
    """

    def __init__(
        self,
        config: OCRConfig,
        worker_index: int = 0,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.config = config
        self.worker_index = worker_index
        self.progress_callback = progress_callback
        self.tesseract_config = build_tesseract_config(config)
        self.loaded = False

    def load(self) -> None:
        """Verify the Tesseract binary and language data are available.

        Raises:
            RecognitionError: If Tesseract is missing or a configured
                language is not installed.
        """
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd
        try:
            version = pytesseract.get_tesseract_version()
            installed = set(pytesseract.get_languages(config=""))
        except (TesseractNotFoundError, TesseractError, OSError) as exc:
            raise RecognitionError(
                f"Worker {self.worker_index} could not start Tesseract: {exc}"
            ) from exc

        missing = [
            lang for lang in self.config.language.split("+") if lang not in installed
        ]
        if missing:
            raise RecognitionError(
                f"Worker {self.worker_index}: Tesseract language data not "
                f"installed: {', '.join(missing)}"
            )

        self.loaded = True
        logger.debug(
            "Worker %d loaded Tesseract %s (%s)",
            self.worker_index,
            version,
            self.config.language,
        )

    def terminate(self) -> None:
        """Release the engine. Safe to call more than once."""
        if self.loaded:
            logger.debug("Worker %d terminated", self.worker_index)
        self.loaded = False

    def _emit(self, section_index: int, progress: float) -> None:
        if self.progress_callback is not None:
            self.progress_callback(
                ProgressEvent(
                    worker_index=self.worker_index,
                    section_index=section_index,
                    status=RECOGNIZING_STATUS,
                    progress=progress,
                )
            )

    def recognize(self, section: Section) -> RecognizedText:
        """Run OCR on one section.

        Args:
            section: Bitmap band to recognize.

        Returns:
            Recognized text with the mean word confidence in ``[0, 1]``.

        Raises:
            RecognitionError: If the engine is not loaded or Tesseract fails.
        """
        if not self.loaded:
            raise RecognitionError(
                f"Worker {self.worker_index} is not loaded", section.index
            )

        self._emit(section.index, 0.0)
        pil_image = Image.fromarray(np.ascontiguousarray(section.bitmap))
        try:
            text = pytesseract.image_to_string(
                pil_image, lang=self.config.language, config=self.tesseract_config
            )
            self._emit(section.index, 0.5)
            data = pytesseract.image_to_data(
                pil_image,
                lang=self.config.language,
                config=self.tesseract_config,
                output_type=pytesseract.Output.DICT,
            )
        except (TesseractError, RuntimeError, OSError) as exc:
            raise RecognitionError(
                f"OCR failed on section {section.index} "
                f"(worker {self.worker_index}): {exc}",
                section.index,
            ) from exc

        total_conf = 0.0
        word_count = 0
        for raw_conf, raw_text in zip(data.get("conf", []), data.get("text", [])):
            conf = float(raw_conf)
            if conf > 0 and str(raw_text).strip():
                total_conf += conf
                word_count += 1
        avg_conf = (total_conf / word_count / 100.0) if word_count > 0 else 0.0

        self._emit(section.index, 1.0)
        logger.debug(
            "Worker %d recognized section %d: %d words, confidence %.2f",
            self.worker_index,
            section.index,
            word_count,
            avg_conf,
        )
        return RecognizedText(
            section_index=section.index,
            text=text,
            confidence=avg_conf,
            word_count=word_count,
        )
