"""
Tests for column type inference and cell formatting
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from tableview.ui.type_detector import (
    ColumnType,
    format_cell_value,
    infer_column_type,
    infer_column_types,
    parse_temporal,
    to_epoch_ms,
    to_number,
)


class TestInference:
    """Test per-column type inference"""

    @pytest.mark.parametrize("values, expected", [
        ([1, 2, 3], ColumnType.INTEGER),
        (["1", "42"], ColumnType.INTEGER),
        ([1, 2.5], ColumnType.FLOAT),
        (["3.0"], ColumnType.FLOAT),
        ([Decimal("1.25")], ColumnType.FLOAT),
        ([True, False], ColumnType.BOOLEAN),
        (["TRUE", "false"], ColumnType.BOOLEAN),
        ([True, 1, 0], ColumnType.BOOLEAN),
        (["2024-01-05", "2023/12/31"], ColumnType.DATE),
        ([date(2024, 1, 5)], ColumnType.DATE),
        (["2024-01-05 10:30:00", "2024-01-06"], ColumnType.DATETIME),
        ([datetime(2024, 1, 5, 10, 30)], ColumnType.DATETIME),
        (["alice", "bob"], ColumnType.STRING),
        (["1", "two"], ColumnType.STRING),
        ([{"a": 1}], ColumnType.STRING),
    ])
    def test_inferred_type(self, values, expected):
        assert infer_column_type(values) == expected

    def test_nulls_are_ignored(self):
        assert infer_column_type([None, 5, None]) == ColumnType.INTEGER

    def test_all_null_is_string(self):
        assert infer_column_type([None, None]) == ColumnType.STRING
        assert infer_column_type([]) == ColumnType.STRING

    def test_blank_strings_are_not_numbers(self):
        assert infer_column_type(["", "5"]) == ColumnType.STRING

    def test_nan_is_not_a_number(self):
        assert infer_column_type(["NaN"]) == ColumnType.STRING

    def test_per_column(self, sample_rows):
        types = infer_column_types(["id", "name", "age", "joined"], sample_rows)
        assert types == {
            "id": ColumnType.INTEGER,
            "name": ColumnType.STRING,
            "age": ColumnType.INTEGER,
            "joined": ColumnType.DATE,
        }


class TestConversions:
    """Test numeric and temporal helpers"""

    def test_to_number(self):
        assert to_number(" 12 ") == 12.0
        assert to_number(True) is None
        assert to_number("abc") is None
        assert to_number(None) is None

    def test_parse_temporal(self):
        assert parse_temporal("2024-1-5") == datetime(2024, 1, 5)
        assert parse_temporal("2024-02-30") is None
        assert parse_temporal("2024-01-05T10:30:15.5Z").microsecond == 500000
        assert parse_temporal("yesterday") is None

    def test_epoch_ms_uses_offsets(self):
        assert to_epoch_ms("1970-01-01T01:00:00+01:00") == 0
        assert to_epoch_ms("1970-01-01") == 0
        assert to_epoch_ms("not a date") is None


class TestFormatting:
    """Test cell formatting"""

    def test_null(self):
        assert format_cell_value(None, ColumnType.STRING) == "NULL"

    def test_booleans(self):
        assert format_cell_value(True, ColumnType.BOOLEAN) == "✓"
        assert format_cell_value("false", ColumnType.BOOLEAN) == "✗"
        assert format_cell_value(0, ColumnType.BOOLEAN) == "✗"

    def test_dates(self):
        assert format_cell_value("2024/1/5", ColumnType.DATE) == "2024-01-05"
        assert format_cell_value(datetime(2024, 1, 5, 9, 8, 7), ColumnType.DATETIME) == "2024-01-05 09:08:07"

    def test_json_values(self):
        assert format_cell_value({"a": [1, 2]}) == '{"a": [1, 2]}'
        assert format_cell_value({"a": 1}, full=True) == '{\n  "a": 1\n}'

    def test_truncation(self):
        text = "x" * 150
        assert format_cell_value(text, ColumnType.STRING) == "x" * 100 + "..."
        assert format_cell_value(text, ColumnType.STRING, full=True) == text
        assert format_cell_value("abcdef", max_length=3) == "abc..."
