"""Deduplication and schema validation of candidate records.

Candidates from every strategy are merged by composite key (first
occurrence wins), then checked against the record schema. Rejected
candidates are dropped and only counted; an empty result is an error.
"""

import re
from dataclasses import dataclass, field

from listing_ocr.errors import NoRecordsFoundError
from listing_ocr.models import CandidateRecord, Record
from listing_ocr.utils.config import ValidationConfig
from listing_ocr.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ValidationResult:
    """Result of a single field validation check."""

    field_name: str
    is_valid: bool
    message: str
    rule_name: str


@dataclass
class ReconciliationReport:
    """Counts describing one deduplication and validation pass."""

    records: list[Record]
    candidate_count: int
    duplicate_count: int
    rejected_count: int
    rejections: dict[str, int] = field(default_factory=dict)


class RecordValidator:
    """Validates and deduplicates candidate records.

    Args:
        config: Validation rules. Defaults match the record schema:
            name of three or more characters, positive quantity,
            alphanumeric-and-hyphen SKU, location starting letter+digit.
    """

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self.config = config or ValidationConfig()
        self._sku_re = re.compile(self.config.sku_pattern)
        self._location_re = re.compile(self.config.location_pattern)

    def _validate_name(self, candidate: CandidateRecord) -> ValidationResult:
        if len(candidate.name.strip()) >= self.config.min_name_length:
            return ValidationResult("name", True, "Name length ok", "min_length")
        return ValidationResult(
            "name",
            False,
            f"Name shorter than {self.config.min_name_length}: {candidate.name!r}",
            "min_length",
        )

    def _validate_quantity(self, candidate: CandidateRecord) -> ValidationResult:
        if candidate.quantity > 0:
            return ValidationResult("quantity", True, "Positive quantity", "positive")
        return ValidationResult(
            "quantity",
            False,
            f"Quantity must be positive: {candidate.quantity}",
            "positive",
        )

    def _validate_sku(self, candidate: CandidateRecord) -> ValidationResult:
        if self._sku_re.match(candidate.sku):
            return ValidationResult("sku", True, "Matches pattern", "regex")
        return ValidationResult(
            "sku", False, f"Invalid SKU: {candidate.sku!r}", "regex"
        )

    def _validate_location(self, candidate: CandidateRecord) -> ValidationResult:
        if not candidate.location or self._location_re.match(candidate.location):
            return ValidationResult("location", True, "Location ok", "regex")
        return ValidationResult(
            "location", False, f"Invalid location: {candidate.location!r}", "regex"
        )

    def validate(self, candidate: CandidateRecord) -> list[ValidationResult]:
        """Run every rule against a candidate."""
        return [
            self._validate_name(candidate),
            self._validate_quantity(candidate),
            self._validate_sku(candidate),
            self._validate_location(candidate),
        ]

    def is_valid(self, candidate: CandidateRecord) -> bool:
        return all(result.is_valid for result in self.validate(candidate))

    @staticmethod
    def deduplicate(candidates: list[CandidateRecord]) -> list[CandidateRecord]:
        """Keep the first candidate for each composite key."""
        seen: set[str] = set()
        unique: list[CandidateRecord] = []
        for candidate in candidates:
            if candidate.key in seen:
                continue
            seen.add(candidate.key)
            unique.append(candidate)
        return unique

    def reconcile_report(
        self, candidates: list[CandidateRecord]
    ) -> ReconciliationReport:
        """Deduplicate and validate, returning the records with counts.

        Never raises for an empty result; see :meth:`reconcile`.
        """
        unique = self.deduplicate(candidates)
        records: list[Record] = []
        rejections: dict[str, int] = {}

        for candidate in unique:
            failures = [r for r in self.validate(candidate) if not r.is_valid]
            if failures:
                for failure in failures:
                    rejections[failure.field_name] = (
                        rejections.get(failure.field_name, 0) + 1
                    )
                logger.debug(
                    "Rejected %s candidate on line %d: %s",
                    candidate.source,
                    candidate.line_number,
                    "; ".join(f.message for f in failures),
                )
                continue
            records.append(Record.from_candidate(candidate))

        report = ReconciliationReport(
            records=records,
            candidate_count=len(candidates),
            duplicate_count=len(candidates) - len(unique),
            rejected_count=len(unique) - len(records),
            rejections=rejections,
        )
        logger.info(
            "Reconciled %d candidates: %d duplicates, %d rejected, %d records",
            report.candidate_count,
            report.duplicate_count,
            report.rejected_count,
            len(records),
        )
        return report

    def reconcile(self, candidates: list[CandidateRecord]) -> list[Record]:
        """Deduplicate and validate candidates into final records.

        Raises:
            NoRecordsFoundError: If no candidate survives.
        """
        report = self.reconcile_report(candidates)
        if not report.records:
            raise NoRecordsFoundError(report.candidate_count, report.rejected_count)
        return report.records


def reconcile(
    candidates: list[CandidateRecord], config: ValidationConfig | None = None
) -> list[Record]:
    """Reconcile candidates with a throwaway :class:`RecordValidator`."""
    return RecordValidator(config).reconcile(candidates)
