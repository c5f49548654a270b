"""
Upload parsers module.
"""

from parsers.csv_parser import (
    CSV_HEADERS,
    CSVParseResult,
    tokenize_csv,
    iter_csv_rows,
    serialize_rows,
)

__all__ = [
    "CSV_HEADERS",
    "CSVParseResult",
    "tokenize_csv",
    "iter_csv_rows",
    "serialize_rows",
]
