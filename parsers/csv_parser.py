"""
CSV tokenizer for merchant product uploads.

Merchant files come from spreadsheets and hand edits, so the dialect is
deliberately lenient:
- a double quote toggles "inside quotes"; quote characters are consumed
- commas and newlines inside quotes are literal
- an unterminated quote is closed by end of input
- blank lines are dropped, fields are trimmed
Nothing here raises on malformed input; an empty result is valid.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator
import structlog

logger = structlog.get_logger(__name__)


CSV_HEADERS: tuple[str, ...] = (
    "Product Code",
    "Product Name",
    "Category",
    "Short Description",
    "Full Description",
    "Size (MM / Inch)",
    "Colour / Finish",
    "Packing Size",
    "MRP (INR)",
    "HSN Code",
    "Material",
    "Variant Code",
    "Product Image URL",
    "Notes",
)


@dataclass
class CSVParseResult:
    """Result of tokenizing a CSV upload."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return len(self.rows) > 0

    @property
    def unknown_headers(self) -> list[str]:
        return [h for h in self.headers if h not in CSV_HEADERS]


def empty_row() -> dict[str, str]:
    """Row with every known header set to ""."""
    return {header: "" for header in CSV_HEADERS}


def split_records(text: str) -> list[str]:
    """
    Split raw text into records, honoring quoted newlines.

    Quote characters are kept in the returned records; parse_csv_line
    consumes them.
    """
    records: list[str] = []
    current: list[str] = []
    inside_quotes = False

    for char in text:
        if char == '"':
            inside_quotes = not inside_quotes

        if char == "\n" and not inside_quotes:
            line = "".join(current)
            if line.strip():
                records.append(line)
            current = []
        else:
            current.append(char)

    line = "".join(current)
    if line.strip():
        records.append(line)

    return records


def parse_csv_line(line: str) -> list[str]:
    """Split one record into trimmed fields."""
    fields: list[str] = []
    current: list[str] = []
    inside_quotes = False

    for char in line:
        if char == '"':
            inside_quotes = not inside_quotes
        elif char == "," and not inside_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())

    return fields


def _row_from_values(headers: list[str], values: list[str]) -> dict[str, str]:
    row = empty_row()
    for position, header in enumerate(headers):
        if header in row:
            row[header] = values[position] if position < len(values) else ""
    return row


def iter_csv_rows(text: str) -> Iterator[dict[str, str]]:
    """
    Yield rows lazily.

    Not restartable: call again with the raw text to re-parse.
    """
    records = split_records(text.lstrip("\ufeff"))
    if not records:
        return

    headers = parse_csv_line(records[0])
    for record in records[1:]:
        yield _row_from_values(headers, parse_csv_line(record))


def tokenize_csv(text: str) -> CSVParseResult:
    """
    Tokenize a CSV upload into rows keyed by known header.

    The first record is the header row; headers map to columns by
    position. Unknown headers are ignored and known headers missing from
    the file default to "".

    Args:
        text: Decoded file contents

    Returns:
        CSVParseResult (possibly with zero rows)
    """
    records = split_records(text.lstrip("\ufeff"))
    if not records:
        logger.info("csv_empty")
        return CSVParseResult()

    headers = parse_csv_line(records[0])
    rows = [_row_from_values(headers, parse_csv_line(record)) for record in records[1:]]

    result = CSVParseResult(headers=headers, rows=rows)
    logger.info(
        "csv_tokenized",
        headers=len(headers),
        unknown_headers=result.unknown_headers,
        rows=len(rows)
    )
    return result


def _quote(value: str) -> str:
    if '"' in value:
        raise ValueError("Double quotes cannot be represented in import CSV fields")
    if value != value.strip():
        raise ValueError("Leading or trailing whitespace would be trimmed on import")
    if "," in value or "\n" in value or "\r" in value:
        return f'"{value}"'
    return value


def serialize_rows(
    rows: Iterable[dict[str, str]],
    headers: Iterable[str] = CSV_HEADERS,
) -> str:
    """
    Write rows back to CSV text in the same dialect tokenize_csv reads.

    Raises:
        ValueError: If a field contains a double quote or has leading or
            trailing whitespace, neither of which tokenize_csv reads back
    """
    header_list = list(headers)
    lines = [",".join(_quote(h) for h in header_list)]
    for row in rows:
        lines.append(",".join(_quote(row.get(h, "") or "") for h in header_list))
    return "\n".join(lines) + "\n"
