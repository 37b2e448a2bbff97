"""Column type inference and cell formatting for the rendering client."""

import json
import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

MAX_CELL_LENGTH = 100

_TEMPORAL_PATTERN = re.compile(
    r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})"
    r"(?:[ T](\d{1,2}):(\d{2})(?::(\d{2})(?:\.(\d+))?)?\s*(Z|[+-]\d{2}:?\d{2})?)?$"
)


class ColumnType(Enum):
    """Display and comparison type of a column."""
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"

    @property
    def is_numeric(self) -> bool:
        return self in (ColumnType.INTEGER, ColumnType.FLOAT)

    @property
    def is_temporal(self) -> bool:
        return self in (ColumnType.DATE, ColumnType.DATETIME)


def to_number(value: Any) -> Optional[float]:
    """Numeric value of ``value``, or None when it is not a number.

    Booleans, blank strings and NaN are not numbers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        if not value.strip():
            return None
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _parse_offset(text: str) -> timezone:
    if text == "Z":
        return timezone.utc
    sign = -1 if text[0] == "-" else 1
    digits = text[1:].replace(":", "")
    return timezone(sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:])))


def parse_temporal(value: Any) -> Optional[datetime]:
    """Parse a date or datetime value, returning None if it is not one."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str):
        return None

    match = _TEMPORAL_PATTERN.match(value.strip())
    if not match:
        return None
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    try:
        return datetime(
            int(year), int(month), int(day),
            int(hour or 0), int(minute or 0), int(second or 0),
            int((fraction or "0").ljust(6, "0")[:6]),
            tzinfo=_parse_offset(offset) if offset else None,
        )
    except ValueError:
        return None


def has_time_part(value: Any) -> bool:
    if isinstance(value, datetime):
        return True
    return isinstance(value, str) and ":" in value


def to_epoch_ms(value: Any) -> Optional[float]:
    """Milliseconds since the epoch; naive values are read as UTC."""
    parsed = parse_temporal(value)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000


def _is_boolean_like(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        return value.lower() in ("true", "false")
    return isinstance(value, (int, float)) and value in (0, 1)


def infer_column_type(values: Iterable[Any]) -> ColumnType:
    """Infer one column's type from its values; nulls are ignored."""
    values = [v for v in values if v is not None]
    if not values:
        return ColumnType.STRING

    numbers = [to_number(v) for v in values]
    if all(n is not None for n in numbers):
        fractional = any("." in str(v) or not n.is_integer() for v, n in zip(values, numbers))
        return ColumnType.FLOAT if fractional else ColumnType.INTEGER

    if all(_is_boolean_like(v) for v in values):
        return ColumnType.BOOLEAN

    if all(parse_temporal(v) is not None for v in values):
        return ColumnType.DATETIME if any(has_time_part(v) for v in values) else ColumnType.DATE

    return ColumnType.STRING


def infer_column_types(columns: List[str], rows: List[Dict[str, Any]]) -> Dict[str, ColumnType]:
    """Infer a type for every column from the rows of the current page."""
    types = {col: infer_column_type(row.get(col) for row in rows) for col in columns}
    detected = {col: t.value for col, t in types.items()}
    logger.debug(f"Detected column types: {detected}")
    return types


def display_text(value: Any) -> str:
    """Plain string form of a value, used for searching and copying."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def format_cell_value(value: Any, column_type: Optional[ColumnType] = None,
                      full: bool = False, max_length: int = MAX_CELL_LENGTH) -> str:
    """Format a cell for display according to its column type.

    Args:
        value: Raw cell value
        column_type: Type inferred for the column
        full: Return the complete text instead of truncating
        max_length: Truncation limit when ``full`` is False
    """
    if value is None:
        return "NULL"

    if isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False, default=str, indent=2 if full else None)
    elif column_type == ColumnType.BOOLEAN:
        lowered = display_text(value).lower()
        if lowered in ("true", "1"):
            text = "✓"
        elif lowered in ("false", "0"):
            text = "✗"
        else:
            text = str(value)
    elif column_type == ColumnType.DATE:
        parsed = parse_temporal(value)
        text = parsed.date().isoformat() if parsed else str(value)
    elif column_type == ColumnType.DATETIME:
        parsed = parse_temporal(value)
        text = parsed.strftime("%Y-%m-%d %H:%M:%S") if parsed else str(value)
    else:
        text = display_text(value)

    if not full and len(text) > max_length:
        text = text[:max_length] + "..."
    return text
