"""
Exception hierarchy for the listing OCR pipeline.

Every error names the pipeline stage it came from so callers can present
a meaningful message without inspecting tracebacks.

Exception Hierarchy:
    ListingOCRError (base)
    ├── DecodeError            image could not be decoded
    ├── NotInitializedError    recognition attempted before pool setup
    ├── PoolStateError         invalid worker pool lifecycle transition
    ├── RecognitionError       a section's OCR call failed
    └── NoRecordsFoundError    nothing survived validation
"""


class ListingOCRError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message.
        stage: Pipeline stage that raised the error.
        details: Optional dictionary with additional context.
    """

    stage = "pipeline"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        text = f"[{self.stage}] {self.message}"
        if self.details:
            return f"{text} | Details: {self.details}"
        return text


class DecodeError(ListingOCRError):
    """Raised when an uploaded image is unsupported or unreadable."""

    stage = "decode"

    def __init__(self, message: str, mime_type: str | None = None):
        details = {"mime_type": mime_type} if mime_type else None
        super().__init__(message, details)


class NotInitializedError(ListingOCRError):
    """Raised when recognition is requested from a pool that is not ready."""

    stage = "recognition"

    def __init__(self, state: str):
        super().__init__(
            "Recognition worker pool is not initialized", {"state": state}
        )


class PoolStateError(ListingOCRError):
    """Raised on a lifecycle transition the pool does not allow."""

    stage = "recognition"

    def __init__(self, message: str, state: str):
        super().__init__(message, {"state": state})


class RecognitionError(ListingOCRError):
    """Raised when OCR of a section, or engine start-up, fails."""

    stage = "recognition"

    def __init__(self, message: str, section_index: int | None = None):
        details = {"section": section_index} if section_index is not None else None
        self.section_index = section_index
        super().__init__(message, details)


class NoRecordsFoundError(ListingOCRError):
    """Raised when no candidate record survives deduplication and validation."""

    stage = "validation"

    def __init__(self, candidate_count: int = 0, rejected_count: int = 0):
        super().__init__(
            "Could not extract product information. Please ensure the image "
            "is clear and contains product details.",
            {"candidates": candidate_count, "rejected": rejected_count},
        )
        self.candidate_count = candidate_count
        self.rejected_count = rejected_count
