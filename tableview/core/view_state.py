"""Authoritative per-view pagination, sort and filter state."""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .exceptions import NoActiveViewError
from .query_builder import Filter, SortColumn

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def normalize_direction(direction: Optional[str]) -> str:
    """Lower-case a sort direction, defaulting to ascending."""
    if direction and str(direction).lower() == "desc":
        return "desc"
    return "asc"


@dataclass(frozen=True)
class ViewIdentifier:
    """Composite key for one open table view."""
    connection_name: str
    database_name: str
    table_name: str

    def __str__(self) -> str:
        return f"{self.connection_name}/{self.database_name}/{self.table_name}"

    @classmethod
    def parse(cls, text: str) -> "ViewIdentifier":
        """Parse ``connection/database/table``."""
        parts = text.split("/")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Expected CONNECTION/DATABASE/TABLE, got: {text}")
        return cls(*parts)


@dataclass(frozen=True)
class SortSpec:
    """Either a single column sort or an ordered list of column sorts."""
    column: Optional[str] = None
    direction: str = "asc"
    columns: Tuple[SortColumn, ...] = ()

    @classmethod
    def single(cls, column: str, direction: Optional[str] = "asc") -> "SortSpec":
        return cls(column=column, direction=normalize_direction(direction))

    @classmethod
    def multi(cls, columns: Iterable[SortColumn]) -> "SortSpec":
        return cls(columns=tuple(
            SortColumn(c.column, normalize_direction(c.direction)) for c in columns
        ))

    def is_empty(self) -> bool:
        return not self.column and not self.columns


@dataclass(frozen=True)
class TableViewState:
    """Host-owned state for one view.

    At most one of ``sort_column`` and ``sort_columns`` is active; neither
    means unordered. ``custom_query`` replaces the table as the query
    source after a raw query until the next refresh.
    """
    view_id: ViewIdentifier
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    sort_column: Optional[str] = None
    sort_direction: str = "asc"
    sort_columns: Tuple[SortColumn, ...] = ()
    filters: Tuple[Filter, ...] = ()
    custom_query: Optional[str] = None

    def export_snapshot(self) -> "TableViewState":
        """The filters and sort of this view with pagination dropped."""
        return replace(self, page=1)


def navigate(state: TableViewState, page: int, page_size: Optional[int] = None) -> TableViewState:
    """Move to ``page``; sort and filters are untouched."""
    if page_size:
        return replace(state, page=page, page_size=page_size)
    return replace(state, page=page)


def apply_sort(state: TableViewState, spec: Optional[SortSpec],
               filters: Optional[Iterable[Filter]] = None) -> TableViewState:
    """Apply a sort spec, clearing the other sort mode.

    An empty SortSpec leaves the sort alone. Bundled filters are applied in
    the same step and reset the page like any filter change.
    """
    if spec is not None and not spec.is_empty():
        if spec.columns:
            state = replace(state, sort_column=None, sort_direction="asc",
                            sort_columns=tuple(spec.columns))
        else:
            state = replace(state, sort_column=spec.column,
                            sort_direction=normalize_direction(spec.direction),
                            sort_columns=())

    if filters is not None:
        state = replace(state, filters=tuple(filters), page=1)
    return state


def apply_filters(state: TableViewState, filters: Iterable[Filter],
                  sort: Optional[SortSpec] = None) -> TableViewState:
    """Replace filters wholesale, reset to page 1 and apply a bundled sort."""
    return apply_sort(replace(state, filters=tuple(filters), page=1), sort)


def clear_filters(state: TableViewState) -> TableViewState:
    """Drop all filters and go back to page 1; sort is kept."""
    return replace(state, filters=(), page=1)


def use_custom_query(state: TableViewState, query: str) -> TableViewState:
    """Make ``query`` the view's source; filters and sort of the old source are dropped."""
    return replace(state, custom_query=query, page=1, filters=(),
                   sort_column=None, sort_direction="asc", sort_columns=())


def use_table_source(state: TableViewState) -> TableViewState:
    return replace(state, custom_query=None)


class ViewStateStore:
    """Maps each open ``ViewIdentifier`` to its current state record."""

    def __init__(self, default_page_size: int = DEFAULT_PAGE_SIZE):
        self.default_page_size = default_page_size
        self._states: Dict[ViewIdentifier, TableViewState] = {}

    def open(self, view_id: ViewIdentifier, page_size: Optional[int] = None) -> TableViewState:
        """Seed state for a newly opened view, keeping any existing record."""
        if view_id not in self._states:
            self._states[view_id] = TableViewState(
                view_id=view_id,
                page_size=page_size or self.default_page_size,
            )
            logger.info(f"Opened view {view_id}")
        return self._states[view_id]

    def close(self, view_id: ViewIdentifier) -> None:
        if self._states.pop(view_id, None) is not None:
            logger.info(f"Closed view {view_id}")

    def get(self, view_id: ViewIdentifier) -> Optional[TableViewState]:
        return self._states.get(view_id)

    def require(self, view_id: ViewIdentifier) -> TableViewState:
        state = self._states.get(view_id)
        if state is None:
            raise NoActiveViewError(view_id)
        return state

    def update(self, view_id: ViewIdentifier,
               transition: Callable[[TableViewState], TableViewState]) -> TableViewState:
        """Swap in the result of ``transition`` as one atomic step."""
        new_state = transition(self.require(view_id))
        self._states[view_id] = new_state
        return new_state

    def open_views(self) -> List[ViewIdentifier]:
        return list(self._states)

    def __contains__(self, view_id: ViewIdentifier) -> bool:
        return view_id in self._states

    def __len__(self) -> int:
        return len(self._states)
