"""
Tests for typed filter expressions
"""

import pytest

from tableview.core.query_builder import Filter
from tableview.ui.filter_expression import FilterSyntaxError, parse_filter_expression


@pytest.mark.parametrize("text, expected", [
    ("age > 30", Filter("age", ">", "30")),
    ("age>=30", Filter("age", ">=", "30")),
    ("name != bob", Filter("name", "!=", "bob")),
    ("name like 'bo b'", Filter("name", "LIKE", "bo b")),
    ("id IN 1, 2,3", Filter("id", "IN", "1, 2,3")),
    ("id not  in 4,5", Filter("id", "NOT IN", "4,5")),
    ("email IS NULL", Filter("email", "IS NULL", "")),
    ("email is not null", Filter("email", "IS NOT NULL", "")),
    ("status_in IN a", Filter("status_in", "IN", "a")),
])
def test_parse(text, expected):
    assert parse_filter_expression(text) == expected


@pytest.mark.parametrize("text", ["", "age", "age >", "id INSIDE 3", "> 5"])
def test_rejects_incomplete(text):
    with pytest.raises(FilterSyntaxError):
        parse_filter_expression(text)


def test_column_must_be_known():
    with pytest.raises(FilterSyntaxError, match="Unknown column"):
        parse_filter_expression("salary > 5", columns=["id", "name"])
    assert parse_filter_expression("id = 5", columns=["id"]).column == "id"
