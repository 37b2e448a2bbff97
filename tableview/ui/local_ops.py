"""Local refinements the client applies to the current page without a round trip."""

from functools import cmp_to_key
from typing import Any, Dict, List, Sequence

from ..core.query_builder import SortColumn
from .type_detector import ColumnType, display_text, to_epoch_ms, to_number


def quick_filter(rows: Sequence[Dict[str, Any]], columns: Sequence[str], text: str) -> List[Dict[str, Any]]:
    """Rows where any non-null column contains ``text``, ignoring case.

    An empty ``text`` returns every row.
    """
    if not text:
        return list(rows)
    needle = text.casefold()
    return [
        row for row in rows
        if any(
            row.get(col) is not None and needle in display_text(row.get(col)).casefold()
            for col in columns
        )
    ]


def _comparable(value: Any, column_type: ColumnType) -> Any:
    if column_type.is_numeric:
        number = to_number(value)
        return 0 if number is None else number
    if column_type.is_temporal:
        millis = to_epoch_ms(value)
        return 0 if millis is None else millis
    return display_text(value).casefold()


def compare_values(a: Any, b: Any, column_type: ColumnType, direction: str = "asc") -> int:
    """Three-way compare; nulls sort first ascending and last descending."""
    ascending = direction != "desc"
    if a is None and b is None:
        return 0
    if a is None:
        return -1 if ascending else 1
    if b is None:
        return 1 if ascending else -1

    left, right = _comparable(a, column_type), _comparable(b, column_type)
    if left < right:
        return -1 if ascending else 1
    if left > right:
        return 1 if ascending else -1
    return 0


def sort_rows(rows: Sequence[Dict[str, Any]], keys: Sequence[SortColumn],
              column_types: Dict[str, ColumnType]) -> List[Dict[str, Any]]:
    """Stable sort by each key in order, later keys breaking ties."""
    if not keys:
        return list(rows)

    def compare(a, b):
        for key in keys:
            column_type = column_types.get(key.column, ColumnType.STRING)
            result = compare_values(a.get(key.column), b.get(key.column), column_type, key.direction)
            if result:
                return result
        return 0

    return sorted(rows, key=cmp_to_key(compare))
