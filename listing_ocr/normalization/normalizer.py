"""Cleanup of raw OCR text before record extraction.

Strips characters outside a small allow-list, collapses whitespace while
keeping column gaps, fixes letter/digit confusions in digit context, and
drops lines too short to carry a record.
"""

import re

from listing_ocr.utils.config import NormalizationConfig
from listing_ocr.utils.logger import get_logger

logger = get_logger(__name__)

_DISALLOWED = re.compile(r"[^A-Za-z0-9 \t\-_.,()&+#'\"/]")
_COLUMN_GAP = re.compile(r"[ \t]{2,}|\t")
_SINGLE_SPACE = re.compile(r"[ \t]")
_ANY_WHITESPACE = re.compile(r"[ \t]+")

COLUMN_GAP = "  "

DIGIT_CONFUSIONS: dict[str, str] = {
    "O": "0",
    "o": "0",
    "l": "1",
    "I": "1",
    "S": "5",
    "s": "5",
}


def correct_digit_confusions(line: str, confusions: dict[str, str]) -> str:
    """Replace look-alike letters that sit immediately before a digit.

    The scan runs right to left so a corrected character counts as digit
    context for its left neighbour: ``"OO1"`` becomes ``"001"`` in one pass.

    Args:
        line: Text to correct.
        confusions: Map of letter to the digit it is mistaken for.

    Returns:
        Corrected text of the same length.
    """
    chars = list(line)
    for i in range(len(chars) - 2, -1, -1):
        replacement = confusions.get(chars[i])
        if replacement is not None and chars[i + 1].isdigit():
            chars[i] = replacement
    return "".join(chars)


class TextNormalizer:
    """Deterministic, idempotent OCR text cleaner.

    Args:
        config: Normalization settings.
    """

    def __init__(self, config: NormalizationConfig | None = None) -> None:
        self.config = config or NormalizationConfig()
        self.confusions = dict(DIGIT_CONFUSIONS)
        if self.config.correct_z_to_two:
            self.confusions["Z"] = "2"

    def _collapse(self, line: str) -> str:
        if not self.config.preserve_column_gaps:
            return _ANY_WHITESPACE.sub(" ", line)
        parts = _COLUMN_GAP.split(line)
        return COLUMN_GAP.join(_SINGLE_SPACE.sub(" ", part) for part in parts)

    def normalize_line(self, line: str) -> str:
        """Clean one line without applying the length filter."""
        line = _DISALLOWED.sub(" ", line)
        line = self._collapse(line)
        line = correct_digit_confusions(line, self.confusions)
        return line.strip()

    def normalize(self, text: str) -> str:
        """Clean recognized text.

        Args:
            text: Raw OCR output, possibly several sections joined.

        Returns:
            Cleaned lines joined by newlines.
        """
        raw_lines = text.splitlines()
        lines = [self.normalize_line(line) for line in raw_lines]
        kept = [line for line in lines if len(line) >= self.config.min_line_length]
        logger.debug(
            "Normalized %d raw lines into %d lines", len(raw_lines), len(kept)
        )
        return "\n".join(kept)


def normalize_text(text: str, config: NormalizationConfig | None = None) -> str:
    """Normalize text with a throwaway :class:`TextNormalizer`."""
    return TextNormalizer(config).normalize(text)
