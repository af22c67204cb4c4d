"""End-to-end listing processing: image in, validated inventory records out.

Combines bitmap preprocessing, pooled OCR, text normalization,
multi-strategy extraction, and reconciliation behind a single
``extract_from_image`` entry point. The recognition pool is owned by the
hosting component and passed in; the processor only borrows it.
"""

import mimetypes
from pathlib import Path

from listing_ocr.errors import DecodeError, NoRecordsFoundError
from listing_ocr.extraction.extractor import MultiStrategyExtractor
from listing_ocr.models import ExtractionResult, RawImage, RecognizedText
from listing_ocr.normalization.normalizer import TextNormalizer
from listing_ocr.preprocessing.pipeline import PreprocessingPipeline
from listing_ocr.utils.config import AppConfig
from listing_ocr.utils.logger import get_logger
from listing_ocr.validation.record_validator import RecordValidator

from .worker_pool import OverallProgressCallback, RecognitionWorkerPool

logger = get_logger(__name__)


def load_image(path: Path) -> RawImage:
    """Read an image file into a :class:`RawImage`.

    Args:
        path: Image file path; the MIME type is guessed from the suffix.

    Raises:
        DecodeError: If the file cannot be read.
    """
    mime_type, _ = mimetypes.guess_type(path.name)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise DecodeError(f"Could not read {path}: {exc}", mime_type) from exc
    return RawImage(
        data=data,
        mime_type=mime_type or "application/octet-stream",
        filename=path.name,
    )


class ListingProcessor:
    """Listing image to inventory records pipeline.

    Use as a context manager to initialize the recognition pool on entry
    and release it on every exit path::

        with ListingProcessor(config) as processor:
            result = processor.extract_from_image(image)

    Args:
        config: Application configuration object.
        pool: Recognition pool to borrow. A new, uninitialized pool is
            created from ``config.ocr`` when omitted.
        progress_callback: Receives overall OCR progress in ``[0, 1]``
            when the processor creates its own pool.
    """

    def __init__(
        self,
        config: AppConfig,
        pool: RecognitionWorkerPool | None = None,
        progress_callback: OverallProgressCallback | None = None,
    ) -> None:
        self.config = config
        self.preprocessing = PreprocessingPipeline(config.preprocessing)
        self.pool = (
            pool
            if pool is not None
            else RecognitionWorkerPool(config.ocr, progress_callback)
        )
        self.normalizer = TextNormalizer(config.normalization)
        self.extractor = MultiStrategyExtractor(config.extraction)
        self.validator = RecordValidator(config.validation)

    def __enter__(self) -> "ListingProcessor":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.terminate()

    def initialize(self) -> None:
        """Bring the recognition pool up before the first upload."""
        self.pool.initialize()

    def terminate(self) -> None:
        """Release the recognition pool. Safe to call repeatedly."""
        self.pool.terminate_all()

    def extract_from_image(self, image: RawImage) -> ExtractionResult:
        """Turn an uploaded listing image into validated records.

        Args:
            image: Raw upload.

        Returns:
            Records plus the recognized text and run statistics.

        Raises:
            DecodeError: If the image cannot be decoded.
            NotInitializedError: If the recognition pool is not ready.
            RecognitionError: If OCR of any section fails.
            NoRecordsFoundError: If no record survives validation.
        """
        logger.info("Processing listing image: %s", image.filename)
        preprocessed = self.preprocessing.process(image)
        recognized = self.pool.recognize_all(preprocessed.sections)
        return self.extract_from_recognized(recognized, len(preprocessed.sections))

    def extract_from_recognized(
        self, recognized: list[RecognizedText], section_count: int | None = None
    ) -> ExtractionResult:
        """Normalize, extract, and reconcile already recognized sections."""
        ordered = sorted(recognized, key=lambda r: r.section_index)
        raw_text = "\n".join(r.text for r in ordered)
        words = sum(r.word_count for r in ordered)
        confidence = (
            sum(r.confidence * r.word_count for r in ordered) / words if words else 0.0
        )
        result = self.extract_from_text(raw_text)
        result.section_count = len(ordered) if section_count is None else section_count
        result.confidence = confidence
        return result

    def extract_from_text(self, raw_text: str) -> ExtractionResult:
        """Run the text stages on raw OCR output.

        Raises:
            NoRecordsFoundError: If no record survives validation.
        """
        normalized = self.normalizer.normalize(raw_text)
        by_strategy = self.extractor.extract_by_strategy(normalized)
        candidates = [c for s in self.extractor.strategies for c in by_strategy[s]]
        report = self.validator.reconcile_report(candidates)

        if not report.records:
            logger.warning(
                "No records found (%d candidates, %d rejected)",
                report.candidate_count,
                report.rejected_count,
            )
            raise NoRecordsFoundError(report.candidate_count, report.rejected_count)

        logger.info("Extracted %d records", len(report.records))
        return ExtractionResult(
            records=report.records,
            raw_text=raw_text,
            normalized_text=normalized,
            section_count=0,
            candidate_count=report.candidate_count,
            rejected_count=report.rejected_count,
            duplicate_count=report.duplicate_count,
            strategy_counts={s.value: len(c) for s, c in by_strategy.items()},
        )
