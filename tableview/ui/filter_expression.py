"""Parsing of typed filter expressions such as ``age >= 30`` or ``id IN 1,2,3``."""

import logging
import re
from typing import Optional, Sequence

from ..core.query_builder import NULL_OPERATORS, Filter, FilterOperator

logger = logging.getLogger(__name__)


def _operator_pattern(op: str) -> str:
    pattern = r"\s+".join(re.escape(word) for word in op.split())
    # Word operators must not run into the value ("id INSIDE" is not IN)
    return r"(?<!\w)" + pattern + r"(?!\w)" if op[0].isalpha() else pattern


# Longest operators first so ">=" is not read as ">"
_OPERATORS = sorted((op.value for op in FilterOperator), key=len, reverse=True)
_EXPRESSION = re.compile(
    r"^\s*(?P<column>[\w.\"]+)\s*(?P<operator>"
    + "|".join(_operator_pattern(op) for op in _OPERATORS)
    + r")\s*(?P<value>.*)$",
    re.IGNORECASE | re.DOTALL,
)


class FilterSyntaxError(ValueError):
    """A filter expression could not be parsed."""


def parse_filter_expression(text: str, columns: Optional[Sequence[str]] = None) -> Filter:
    """Parse ``<column> <operator> [value]`` into a ``Filter``.

    Args:
        text: Expression typed by the user
        columns: Known columns; when given, the column must be one of them

    Raises:
        FilterSyntaxError: the expression is incomplete or names an unknown column
    """
    match = _EXPRESSION.match(text or "")
    if not match:
        raise FilterSyntaxError(f"Expected '<column> <operator> <value>', got: {text!r}")

    column = match.group("column")
    operator = " ".join(match.group("operator").upper().split())
    value = (match.group("value") or "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        value = value[1:-1]

    if columns is not None and column not in columns:
        raise FilterSyntaxError(f"Unknown column: {column}")
    if operator in NULL_OPERATORS:
        value = ""
    elif not value:
        raise FilterSyntaxError(f"Operator {operator} needs a value")

    logger.debug(f"Parsed filter: {column} {operator} {value}")
    return Filter(column, operator, value)
