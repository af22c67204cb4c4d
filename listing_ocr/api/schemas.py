"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel

from listing_ocr.models import Record


class RecordResponse(BaseModel):
    """Response schema for a single inventory record."""

    sku: str
    name: str
    quantity: int
    location: str | None = None
    category: str | None = None
    subcategory: str | None = None
    status: str
    source: str

    @classmethod
    def from_record(cls, record: Record) -> "RecordResponse":
        return cls(**record.to_dict())


class ExtractionResponse(BaseModel):
    """Response schema for a listing extraction request."""

    success: bool
    document_id: str
    filename: str
    records: list[RecordResponse]
    record_count: int
    raw_text: str
    normalized_text: str
    confidence: float
    section_count: int
    candidate_count: int
    duplicate_count: int
    rejected_count: int
    strategy_counts: dict[str, int]
    processing_time_ms: float


class BatchItemResponse(BaseModel):
    """Response schema for a single item in a batch extraction."""

    filename: str
    result: ExtractionResponse | None = None
    error: str | None = None


class BatchExtractionResponse(BaseModel):
    """Response schema for batch extraction of multiple listing images."""

    success: bool
    total_documents: int
    successful: int
    failed: int
    results: list[BatchItemResponse]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    pool_state: str
    pool_size: int
