"""Listing OCR inventory extraction.

Turns a photographed or scanned product listing into validated inventory
records by combining bitmap enhancement, pooled Tesseract OCR, and
multi-strategy text parsing with deduplication.
"""

__version__ = "1.0.0"
