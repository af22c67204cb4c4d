"""Data model shared across the pipeline stages."""

from dataclasses import asdict, dataclass, field
from enum import StrEnum

import numpy as np

SUPPORTED_MIME_TYPES: frozenset[str] = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/tiff",
        "image/bmp",
        "image/x-ms-bmp",
        "image/webp",
    }
)


class Strategy(StrEnum):
    """Text-to-record parsing strategies, declared in execution order."""

    DIRECT_COLUMN = "direct_column"
    STRUCTURED_PATTERN = "structured_pattern"
    FIXED_WIDTH_TABLE = "fixed_width_table"
    LINE_CONTEXT = "line_context"


class RecordStatus(StrEnum):
    """Workflow status of a record; the picking workflow owns transitions."""

    PENDING = "pending"
    PICKED = "picked"
    NOT_FOUND = "not-found"
    ISSUE = "issue"


class PoolState(StrEnum):
    """Lifecycle of a recognition worker pool."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DRAINING = "draining"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class RawImage:
    """An uploaded image exactly as received."""

    data: bytes
    mime_type: str
    filename: str = "image"


@dataclass(frozen=True)
class Section:
    """A horizontal band of a bitmap queued for recognition.

    ``top`` is the first bitmap row covered by the band.
    """

    index: int
    top: int
    bitmap: np.ndarray

    @property
    def height(self) -> int:
        return int(self.bitmap.shape[0])

    def worker_index(self, pool_size: int) -> int:
        return self.index % pool_size


@dataclass(frozen=True)
class ProgressEvent:
    """Progress reported by one worker for one section."""

    worker_index: int
    section_index: int
    status: str
    progress: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.progress <= 1.0:
            raise ValueError(f"Progress must be within [0, 1], got {self.progress}")


@dataclass
class RecognizedText:
    """OCR output for a single section."""

    section_index: int
    text: str
    confidence: float
    word_count: int = 0


@dataclass
class CandidateRecord:
    """An unvalidated record produced by one extraction strategy."""

    sku: str
    name: str
    source: Strategy
    quantity: int = 1
    location: str | None = None
    category: str | None = None
    subcategory: str | None = None
    line_number: int = 0

    @property
    def key(self) -> str:
        """Composite deduplication key."""
        return f"{self.sku}-{self.name.lower()}"


@dataclass
class Record:
    """A candidate that passed validation."""

    sku: str
    name: str
    quantity: int
    source: Strategy
    location: str | None = None
    category: str | None = None
    subcategory: str | None = None
    status: RecordStatus = RecordStatus.PENDING

    @property
    def key(self) -> str:
        return f"{self.sku}-{self.name.lower()}"

    @classmethod
    def from_candidate(cls, candidate: CandidateRecord) -> "Record":
        return cls(
            sku=candidate.sku,
            name=candidate.name,
            quantity=candidate.quantity,
            source=candidate.source,
            location=candidate.location or None,
            category=candidate.category or None,
            subcategory=candidate.subcategory or None,
        )

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["source"] = self.source.value
        data["status"] = self.status.value
        return data


@dataclass
class QualityMetrics:
    """Before/after image quality measurements."""

    sharpness_before: float
    sharpness_after: float
    contrast_before: float
    contrast_after: float


@dataclass
class PreprocessingResult:
    """Sections produced by the preprocessor plus quality measurements."""

    sections: list[Section]
    width: int
    height: int
    scale: float
    metrics: QualityMetrics


@dataclass
class ExtractionResult:
    """Outcome of one image-to-records run."""

    records: list[Record]
    raw_text: str
    normalized_text: str
    section_count: int
    candidate_count: int
    rejected_count: int
    duplicate_count: int
    confidence: float = 0.0
    strategy_counts: dict[str, int] = field(default_factory=dict)
