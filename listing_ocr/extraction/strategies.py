"""Parsing strategies that turn normalized listing text into candidates.

Every strategy is a pure function ``text -> list[CandidateRecord]``. They
share no state and never look at each other's output; overlapping results
are expected and resolved later by deduplication.
"""

import re
import shlex
from dataclasses import dataclass, field

from listing_ocr.models import CandidateRecord, Strategy

# Alphanumeric groups joined by single hyphens, with at least one digit.
IDENTIFIER = r"(?=[A-Za-z0-9-]*\d)[A-Za-z0-9]+(?:-[A-Za-z0-9]+)*"

IDENTIFIER_TOKEN = re.compile(rf"^{IDENTIFIER}$")
NUMERIC_TOKEN = re.compile(r"^\d+$")
LOCATION_TOKEN = re.compile(r"^[A-Z][0-9][A-Z0-9-]*$")
COLUMN_SPLIT = re.compile(r"[ \t]{2,}|\t")
LEADING_IDENTIFIER = re.compile(rf"^(?P<sku>{IDENTIFIER})(?=\s|$)\s*(?P<rest>.*)$")

QUANTITY_LABELLED = re.compile(
    r"\b(?:qty|quantity)[:.\s]*(\d+)\b|\b(\d+)\s*(?:pcs|pc|units|ea|each)\b",
    re.IGNORECASE,
)
LOCATION_LABELLED = re.compile(
    r"\b(?:bin|loc|location|shelf)[-:\s]*([A-Z][0-9][A-Z0-9-]*)\b", re.IGNORECASE
)
# "category Wine, Red" or "cat. Wine"; the value runs to a column gap or line end.
CATEGORY_LABELLED = re.compile(
    r"\b(?:category\b[.\s-]*|cat\.\s*)"
    r"(?P<category>[^,\s][^,]*?)"
    r"(?:,\s*(?P<subcategory>[^,\s][^,]*?))?"
    r"(?=[ \t]{2,}|\t|$)",
    re.IGNORECASE,
)

STRUCTURED_LINE = re.compile(
    rf"^(?P<sku>{IDENTIFIER})\s+"
    r"(?P<name>\S.*?)\s+"
    r"(?:(?i:qty|quantity)[:.\s]*)?(?P<quantity>\d+)"
    r"(?:\s*(?i:pcs|pc|units|ea|each))?\s+"
    r"(?:(?i:bin|loc|location|shelf)[-:\s]*)?"
    r"(?P<location>[A-Z][0-9][A-Z0-9-]*)$"
)

HEADER_FIELDS: dict[str, str] = {
    "subcategory": "subcategory",
    "subcat": "subcategory",
    "category": "category",
    "cat": "category",
    "sku": "sku",
    "item": "sku",
    "code": "sku",
    "part": "sku",
    "description": "name",
    "desc": "name",
    "name": "name",
    "product": "name",
    "qty": "quantity",
    "quantity": "quantity",
    "ship": "quantity",
    "count": "quantity",
    "bin": "location",
    "location": "location",
    "loc": "location",
    "shelf": "location",
}

MAX_CATEGORY_LENGTH = 20


def split_columns(line: str) -> list[str]:
    """Split a line on runs of two or more spaces, or on tabs."""
    return [col.strip() for col in COLUMN_SPLIT.split(line.strip()) if col.strip()]


def split_quoted(line: str) -> list[str]:
    """Split on single spaces, keeping double-quoted phrases whole."""
    lexer = shlex.shlex(line, posix=True)
    lexer.whitespace_split = True
    lexer.quotes = '"'
    lexer.escape = ""
    lexer.commenters = ""
    try:
        return list(lexer)
    except ValueError:
        return line.replace('"', " ").split()


def take_category(text: str) -> tuple[str, str | None, str | None]:
    """Remove a labelled category phrase from ``text``.

    Returns:
        The text with the phrase replaced by a column gap, the category,
        and the subcategory (``None`` when absent).
    """
    match = CATEGORY_LABELLED.search(text)
    if not match:
        return text, None, None
    subcategory = match.group("subcategory")
    remainder = text[: match.start()] + "  " + text[match.end() :]
    return (
        remainder,
        match.group("category").strip(),
        subcategory.strip() if subcategory else None,
    )


def _infer_category(columns: list[str]) -> tuple[list[str], str | None]:
    """Take the shortest of several descriptive columns as the category."""
    if len(columns) < 2:
        return columns, None
    short = [c for c in columns if len(c) < MAX_CATEGORY_LENGTH]
    if not short:
        return columns, None
    category = min(short, key=len)
    rest = list(columns)
    rest.remove(category)
    return rest, category


def header_field(column: str) -> str | None:
    """Map a header column title to a record field name."""
    words = re.findall(r"[a-z]+", column.lower())
    for word in words:
        if word in HEADER_FIELDS:
            return HEADER_FIELDS[word]
    return None


def is_header_line(line: str) -> bool:
    """A header names at least two known columns and contains no digits."""
    if any(ch.isdigit() for ch in line):
        return False
    words = re.findall(r"[a-z]+", line.lower())
    return sum(1 for word in words if word in HEADER_FIELDS) >= 2


def _find_header(lines: list[str]) -> tuple[int, list[str | None]]:
    for index, line in enumerate(lines):
        if is_header_line(line):
            columns = split_columns(line)
            if len(columns) < 2:
                columns = line.split()
            return index, [header_field(col) for col in columns]
    return -1, []


def _map_by_header(
    columns: list[str], fields: list[str | None], line_number: int
) -> CandidateRecord | None:
    values: dict[str, str] = {}
    for column, target in zip(columns, fields):
        if target and target not in values and column:
            values[target] = column.strip('"')

    sku = values.get("sku")
    name = values.get("name")
    if not sku or not name:
        return None

    quantity = values.get("quantity", "")
    return CandidateRecord(
        sku=sku,
        name=name,
        source=Strategy.DIRECT_COLUMN,
        quantity=int(quantity) if NUMERIC_TOKEN.match(quantity) else 1,
        location=values.get("location") or None,
        category=values.get("category") or None,
        subcategory=values.get("subcategory") or None,
        line_number=line_number,
    )


def _map_by_heuristics(
    columns: list[str],
    line_number: int,
    allow_category: bool,
    category: str | None = None,
    subcategory: str | None = None,
) -> CandidateRecord | None:
    sku: str | None = None
    quantity: int | None = None
    location: str | None = None
    rest: list[str] = []

    for raw in columns:
        column = raw.strip().strip('"').strip()
        if category is None:
            column, category, subcategory = take_category(column)
            column = column.strip()
        if not column:
            continue
        if sku is None and IDENTIFIER_TOKEN.match(column) and not column.isdigit():
            sku = column
        elif quantity is None and NUMERIC_TOKEN.match(column):
            quantity = int(column)
        elif location is None and sku is not None and LOCATION_TOKEN.match(column):
            location = column
        else:
            rest.append(column)

    if category is None and allow_category:
        rest, category = _infer_category(rest)

    name = " ".join(rest).strip()
    if sku is None or not name:
        return None
    return CandidateRecord(
        sku=sku,
        name=name,
        source=Strategy.DIRECT_COLUMN,
        quantity=quantity if quantity is not None else 1,
        location=location,
        category=category,
        subcategory=subcategory,
        line_number=line_number,
    )


def extract_direct_column(text: str) -> list[CandidateRecord]:
    """Read rows as delimited columns, using a header row when present.

    Rows start after the header line, or at the first line when no header
    is found. A row with the header's column count is mapped by column
    title; other rows fall back to token-shape heuristics.
    """
    lines = text.splitlines()
    header_index, header_fields = _find_header(lines)
    candidates: list[CandidateRecord] = []

    for line_number in range(header_index + 1, len(lines)):
        line = lines[line_number].strip()
        if not line or is_header_line(line):
            continue

        columns = split_columns(line)
        gap_split = len(columns) >= 3
        category = subcategory = None
        if not gap_split:
            remainder, category, subcategory = take_category(line)
            columns = split_quoted(remainder)

        candidate = None
        if header_fields and len(columns) == len(header_fields):
            candidate = _map_by_header(columns, header_fields, line_number)
        if candidate is None:
            candidate = _map_by_heuristics(
                columns, line_number, gap_split, category, subcategory
            )
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def extract_structured_pattern(text: str) -> list[CandidateRecord]:
    """Match each line against one full-record regular expression."""
    candidates: list[CandidateRecord] = []
    for line_number, line in enumerate(text.splitlines()):
        match = STRUCTURED_LINE.match(line.strip())
        if not match:
            continue
        name, category, subcategory = take_category(match.group("name"))
        name = re.sub(r"\s+", " ", name).strip()
        if not name:
            continue
        candidates.append(
            CandidateRecord(
                sku=match.group("sku"),
                name=name,
                source=Strategy.STRUCTURED_PATTERN,
                quantity=int(match.group("quantity")),
                location=match.group("location"),
                category=category,
                subcategory=subcategory,
                line_number=line_number,
            )
        )
    return candidates


def extract_fixed_width_table(text: str) -> list[CandidateRecord]:
    """Read rows as ``sku | name | quantity [| location]`` columns."""
    candidates: list[CandidateRecord] = []
    for line_number, line in enumerate(text.splitlines()):
        if not line.strip() or is_header_line(line):
            continue
        columns = split_columns(line)
        if len(columns) < 3 or not NUMERIC_TOKEN.match(columns[2]):
            continue
        candidates.append(
            CandidateRecord(
                sku=columns[0],
                name=columns[1],
                source=Strategy.FIXED_WIDTH_TABLE,
                quantity=int(columns[2]),
                location=columns[3] if len(columns) > 3 else None,
                line_number=line_number,
            )
        )
    return candidates


@dataclass
class _Description:
    """Free text split into the parts a record is built from."""

    columns: list[str] = field(default_factory=list)
    quantity: int | None = None
    location: str | None = None
    category: str | None = None
    subcategory: str | None = None

    @property
    def name(self) -> str:
        return " ".join(self.columns)


def _describe(text: str) -> _Description:
    """Split free text into descriptive columns and labelled or trailing fields."""
    result = _Description()

    match = QUANTITY_LABELLED.search(text)
    if match:
        result.quantity = int(match.group(1) or match.group(2))
        text = text[: match.start()] + "  " + text[match.end() :]
    match = LOCATION_LABELLED.search(text)
    if match:
        result.location = match.group(1).upper()
        text = text[: match.start()] + "  " + text[match.end() :]
    text, result.category, result.subcategory = take_category(text)

    descriptive: list[str] = []
    for column in split_columns(text):
        if result.quantity is None and NUMERIC_TOKEN.match(column):
            result.quantity = int(column)
        elif result.location is None and LOCATION_TOKEN.match(column):
            result.location = column
        elif re.search(r"[A-Za-z]", column):
            words = column.split()
            while len(words) > 1:
                if result.location is None and LOCATION_TOKEN.match(words[-1]):
                    result.location = words.pop()
                elif result.quantity is None and NUMERIC_TOKEN.match(words[-1]):
                    result.quantity = int(words.pop())
                else:
                    break
            descriptive.append(" ".join(words))

    if result.category is None:
        descriptive, result.category = _infer_category(descriptive)
    result.columns = descriptive
    return result


def extract_line_context(text: str) -> list[CandidateRecord]:
    """Pair a leading identifier with a description from the same or next line.

    The description is everything after the identifier once quantity,
    location, and category are taken out. When the identifier line carries
    no description of its own and the next line is non-empty and does not
    start a new record, the next line supplies the description and both
    lines are consumed.
    """
    lines = [line.strip() for line in text.splitlines()]
    candidates: list[CandidateRecord] = []
    i = 0
    while i < len(lines):
        match = LEADING_IDENTIFIER.match(lines[i])
        if not match or is_header_line(lines[i]):
            i += 1
            continue

        consumed = 1
        description = _describe(match.group("rest"))
        if not description.columns and i + 1 < len(lines):
            next_line = lines[i + 1]
            if next_line and not LEADING_IDENTIFIER.match(next_line):
                borrowed = _describe(next_line)
                if borrowed.columns:
                    for attr in ("quantity", "location", "category", "subcategory"):
                        if getattr(description, attr) is None:
                            setattr(description, attr, getattr(borrowed, attr))
                    description.columns = borrowed.columns
                    consumed = 2

        if description.columns:
            candidates.append(
                CandidateRecord(
                    sku=match.group("sku"),
                    name=description.name,
                    source=Strategy.LINE_CONTEXT,
                    quantity=(
                        description.quantity if description.quantity is not None else 1
                    ),
                    location=description.location,
                    category=description.category,
                    subcategory=description.subcategory,
                    line_number=i,
                )
            )
        i += consumed
    return candidates
