"""SQL generation for table views.

The builder is a pure function of a view's state: the same state always
yields the same query text. It performs no validation, so pathological
input (an empty ``IN`` list, an unknown operator) produces a plausible but
wrong query that the database rejects at execution time.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class FilterOperator(Enum):
    """Operators understood by the filter renderer."""
    EQUALS = "="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_EQUAL = ">="
    LESS_EQUAL = "<="
    LIKE = "LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"


NULL_OPERATORS = (FilterOperator.IS_NULL.value, FilterOperator.IS_NOT_NULL.value)


class BuildMode(Enum):
    """Whether the query fetches one page or the whole result."""
    PAGE = "page"
    EXPORT = "export"


def quote_literal(value: str) -> str:
    """Single-quote a value, doubling embedded quotes."""
    return "'" + str(value).replace("'", "''") + "'"


def split_list_value(value: str) -> List[str]:
    """Split a comma-separated IN list, trimming tokens and dropping empties."""
    return [token.strip() for token in (value or "").split(",") if token.strip()]


@dataclass(frozen=True)
class Filter:
    """One column/operator/value predicate."""
    column: str
    operator: str
    value: str = ""

    def to_sql(self) -> str:
        """Render this filter as a WHERE clause fragment."""
        col = self.column
        op = self.operator

        if op == FilterOperator.IS_NULL.value:
            return f"{col} IS NULL"
        elif op == FilterOperator.IS_NOT_NULL.value:
            return f"{col} IS NOT NULL"
        elif op == FilterOperator.LIKE.value:
            return f"{col} LIKE {quote_literal(f'%{self.value}%')}"
        elif op in (FilterOperator.IN.value, FilterOperator.NOT_IN.value):
            values = ", ".join(quote_literal(v) for v in split_list_value(self.value))
            return f"{col} {op} ({values})"

        # Unknown operators fall through to the binary rendering as well
        return f"{col} {op} {quote_literal(self.value)}"

    def to_dict(self) -> dict:
        return {"column": self.column, "operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class SortColumn:
    """One entry of a multi-column sort."""
    column: str
    direction: str = "asc"

    def to_sql(self) -> str:
        return f"{self.column} {(self.direction or 'asc').upper()}"

    def to_dict(self) -> dict:
        return {"column": self.column, "direction": self.direction}


def render_where(filters: Iterable[Filter]) -> str:
    """Render filters as a single WHERE clause, or an empty string."""
    clauses = [f.to_sql() for f in filters]
    if not clauses:
        return ""
    return " WHERE " + " AND ".join(clauses)


def render_order_by(sort_column: Optional[str], sort_direction: Optional[str],
                    sort_columns: Iterable[SortColumn]) -> str:
    """Render the ORDER BY clause; a single sort column wins over a list."""
    if sort_column:
        return f" ORDER BY {sort_column} {(sort_direction or 'asc').upper()}"

    sort_columns = list(sort_columns)
    if sort_columns:
        return " ORDER BY " + ", ".join(s.to_sql() for s in sort_columns)
    return ""


def query_source(state) -> str:
    """The relation a view selects from: its table or its custom query."""
    if state.custom_query:
        inner = state.custom_query.strip().rstrip(";").rstrip()
        return f"({inner}) AS custom_query"
    return state.view_id.table_name


def build_query(state, mode: BuildMode = BuildMode.PAGE) -> str:
    """Build the SELECT for a view state.

    Args:
        state: A ``TableViewState`` (or any object with the same fields)
        mode: ``BuildMode.PAGE`` appends LIMIT/OFFSET, ``BuildMode.EXPORT``
            returns the full filtered and sorted result

    Returns:
        The query text
    """
    mode = BuildMode(mode)
    sql = f"SELECT * FROM {query_source(state)}"
    sql += render_where(state.filters)
    sql += render_order_by(state.sort_column, state.sort_direction, state.sort_columns)

    if mode == BuildMode.PAGE:
        offset = (state.page - 1) * state.page_size
        sql += f" LIMIT {state.page_size} OFFSET {offset}"

    logger.debug(f"Built {mode.value} query: {sql}")
    return sql


def build_count_query(state) -> str:
    """Count the rows the view's filters match, ignoring pagination."""
    return f"SELECT COUNT(*) AS total FROM ({build_query(state, BuildMode.EXPORT)}) AS counted"
