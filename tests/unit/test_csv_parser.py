"""
Unit tests for the CSV tokenizer.

Run: pytest tests/unit/test_csv_parser.py -v
"""

import pytest

from parsers.csv_parser import (
    CSV_HEADERS,
    iter_csv_rows,
    parse_csv_line,
    serialize_rows,
    split_records,
    tokenize_csv,
)
from tests.factories import CSVRowFactory


class TestParseCsvLine:
    """Tests for parse_csv_line()"""

    def test_splits_on_commas_and_trims(self):
        assert parse_csv_line(" a , b ,c ") == ["a", "b", "c"]

    def test_quoted_comma_is_literal(self):
        assert parse_csv_line('S-106,"Handle, brass",Matt') == ["S-106", "Handle, brass", "Matt"]

    def test_quotes_are_consumed(self):
        assert parse_csv_line('"abc"') == ["abc"]

    def test_unterminated_quote_runs_to_end(self):
        assert parse_csv_line('a,"b,c') == ["a", "b,c"]

    def test_trailing_comma_gives_empty_field(self):
        assert parse_csv_line("a,b,") == ["a", "b", ""]


class TestSplitRecords:
    """Tests for split_records()"""

    def test_newline_inside_quotes_stays_in_record(self):
        records = split_records('h1,h2\n"line one\nline two",x\n')

        assert len(records) == 2
        assert "line one\nline two" in records[1]

    def test_blank_lines_dropped(self):
        assert split_records("a\n\n   \nb\n") == ["a", "b"]

    def test_empty_text(self):
        assert split_records("") == []


class TestTokenizeCsv:
    """Tests for tokenize_csv()"""

    def test_maps_by_header_position(self):
        text = "Product Name,Product Code\nBrass Handle,S-106\n"

        result = tokenize_csv(text)

        assert result.has_data
        assert result.rows[0]["Product Code"] == "S-106"
        assert result.rows[0]["Product Name"] == "Brass Handle"

    def test_missing_headers_default_to_empty(self):
        result = tokenize_csv("Product Code\nS-106\n")

        row = result.rows[0]
        assert set(row.keys()) == set(CSV_HEADERS)
        assert row["Category"] == ""

    def test_unknown_headers_ignored_and_reported(self):
        result = tokenize_csv("Product Code,Warehouse\nS-106,North\n")

        assert "Warehouse" not in result.rows[0]
        assert result.unknown_headers == ["Warehouse"]

    def test_short_rows_pad_with_empty(self):
        result = tokenize_csv("Product Code,Product Name,Category\nS-106\n")

        assert result.rows[0]["Product Name"] == ""
        assert result.rows[0]["Category"] == ""

    def test_strips_byte_order_mark(self):
        result = tokenize_csv("\ufeffProduct Code\nS-106\n")

        assert result.rows[0]["Product Code"] == "S-106"

    def test_crlf_line_endings(self):
        result = tokenize_csv("Product Code,Product Name\r\nS-106,Handle\r\n")

        assert result.rows[0]["Product Name"] == "Handle"

    def test_empty_input_is_valid(self):
        result = tokenize_csv("")

        assert not result.has_data
        assert result.headers == []

    def test_header_only(self):
        result = tokenize_csv("Product Code,Product Name\n")

        assert result.headers == ["Product Code", "Product Name"]
        assert result.rows == []

    def test_iter_matches_tokenize(self):
        text = "Product Code,Category\nS-106,Handles\nS-107,Knobs\n"

        assert list(iter_csv_rows(text)) == tokenize_csv(text).rows


class TestSerializeRows:
    """Tests for serialize_rows()"""

    def test_serialized_rows_tokenize_back(self):
        rows = [
            CSVRowFactory.create(code="S-106", name="Handle, brass", full_description="Line one\nLine two"),
            CSVRowFactory.create(code="S-107", name="Knob"),
        ]

        result = tokenize_csv(serialize_rows(rows))

        assert result.rows == rows

    def test_rejects_double_quotes(self):
        row = CSVRowFactory.create(name='12" handle')

        with pytest.raises(ValueError):
            serialize_rows([row])

    def test_rejects_padded_values(self):
        row = CSVRowFactory.create(short_description="  padded, note  ")

        with pytest.raises(ValueError):
            serialize_rows([row])

    def test_header_line_first(self):
        text = serialize_rows([], headers=["Product Code", "Category"])

        assert text == "Product Code,Category\n"
