"""FastAPI application hosting listing uploads.

The application lifespan owns the recognition worker pool: it is
initialized once at startup and terminated at shutdown, and every upload
borrows it through the shared :class:`ListingProcessor`.
"""

import shutil
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from listing_ocr import __version__
from listing_ocr.errors import (
    DecodeError,
    ListingOCRError,
    NoRecordsFoundError,
    NotInitializedError,
    PoolStateError,
    RecognitionError,
)
from listing_ocr.models import SUPPORTED_MIME_TYPES, RawImage
from listing_ocr.ocr.listing_processor import ListingProcessor
from listing_ocr.utils.config import load_config
from listing_ocr.utils.logger import get_logger, setup_logging

from .schemas import (
    BatchExtractionResponse,
    BatchItemResponse,
    ExtractionResponse,
    HealthResponse,
    RecordResponse,
)

logger = get_logger(__name__)

_ERROR_STATUS: list[tuple[type[ListingOCRError], int]] = [
    (DecodeError, 400),
    (NoRecordsFoundError, 422),
    (NotInitializedError, 503),
    (PoolStateError, 503),
    (RecognitionError, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize the recognition pool at startup and release it at shutdown."""
    config = getattr(app.state, "config", None) or load_config()
    setup_logging(config.log_level)
    processor = ListingProcessor(config)
    app.state.processor = processor
    try:
        await run_in_threadpool(processor.initialize)
    except RecognitionError as exc:
        logger.error("Recognition pool unavailable, uploads will fail: %s", exc)
    try:
        yield
    finally:
        await run_in_threadpool(processor.terminate)


app = FastAPI(
    title="Listing OCR API",
    description="Extract inventory records from photographed product listings",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_processor(request: Request) -> ListingProcessor:
    """Return the processor created by the application lifespan."""
    processor = getattr(request.app.state, "processor", None)
    if processor is None:
        raise HTTPException(status_code=503, detail="Service is not initialized")
    return processor


def _status_for(exc: ListingOCRError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Return system health and recognition pool status."""
    processor = getattr(request.app.state, "processor", None)
    pool = processor.pool if processor is not None else None
    return HealthResponse(
        status="healthy" if pool is not None and pool.is_ready else "degraded",
        version=__version__,
        tesseract_available=shutil.which("tesseract") is not None,
        pool_state=pool.state.value if pool is not None else "uninitialized",
        pool_size=pool.size if pool is not None else 0,
    )


async def _extract_upload(
    processor: ListingProcessor, file: UploadFile
) -> ExtractionResponse:
    start_time = time.time()
    filename = file.filename or "upload"
    content_type = (file.content_type or "").lower()

    if content_type not in SUPPORTED_MIME_TYPES:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported file type: {file.content_type}",
        )

    content = await file.read()
    image = RawImage(data=content, mime_type=content_type, filename=filename)
    try:
        result = await run_in_threadpool(processor.extract_from_image, image)
    except ListingOCRError as exc:
        logger.error("Extraction failed for %s: %s", filename, exc)
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc

    return ExtractionResponse(
        success=True,
        document_id=str(uuid.uuid4()),
        filename=filename,
        records=[RecordResponse.from_record(r) for r in result.records],
        record_count=len(result.records),
        raw_text=result.raw_text,
        normalized_text=result.normalized_text,
        confidence=result.confidence,
        section_count=result.section_count,
        candidate_count=result.candidate_count,
        duplicate_count=result.duplicate_count,
        rejected_count=result.rejected_count,
        strategy_counts=result.strategy_counts,
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@app.post("/extract", response_model=ExtractionResponse)
async def extract_listing(
    request: Request,
    file: Annotated[UploadFile, File(...)],
) -> ExtractionResponse:
    """Extract inventory records from an uploaded listing image.

    Args:
        request: Incoming request, used to reach the shared processor.
        file: Uploaded image (PNG, JPEG, TIFF, BMP, or WebP).

    Returns:
        Validated records with recognition statistics.
    """
    processor = _get_processor(request)
    return await _extract_upload(processor, file)


@app.post("/extract/batch", response_model=BatchExtractionResponse)
async def extract_batch(
    request: Request,
    files: Annotated[list[UploadFile], File(...)],
) -> BatchExtractionResponse:
    """Extract records from several listing images, one result per file.

    Args:
        request: Incoming request, used to reach the shared processor.
        files: Uploaded images.

    Returns:
        Batch results with per-file outcomes.
    """
    processor = _get_processor(request)
    results: list[BatchItemResponse] = []
    successful = 0

    for file in files:
        filename = file.filename or "unknown"
        try:
            result = await _extract_upload(processor, file)
        except HTTPException as exc:
            results.append(BatchItemResponse(filename=filename, error=exc.detail))
            continue
        results.append(BatchItemResponse(filename=filename, result=result))
        successful += 1

    return BatchExtractionResponse(
        success=successful > 0,
        total_documents=len(files),
        successful=successful,
        failed=len(files) - successful,
        results=results,
    )
