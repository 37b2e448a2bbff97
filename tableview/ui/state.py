"""Client-side mirror of a view and the controller that drives it.

The mirror is a read-only copy of what the host last pushed, plus the
local refinements (quick search, re-sort, selection) derived from it.
Every transition builds a new ``ClientMirrorState``; nothing is merged
in place.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from ..core import protocol
from ..core.channel import ChannelEndpoint
from ..core.exceptions import ChannelClosed, ChannelError
from ..core.query_builder import Filter, SortColumn
from ..core.view_state import DEFAULT_PAGE_SIZE, SortSpec
from .local_ops import quick_filter, sort_rows
from .type_detector import MAX_CELL_LENGTH, ColumnType, display_text, format_cell_value, infer_column_types

logger = logging.getLogger(__name__)

PAGE_SIZE_OPTIONS = (10, 20, 50, 100, 200, 500)


@dataclass(frozen=True)
class ClientMirrorState:
    """Everything the client renders for one view."""
    columns: Tuple[str, ...] = ()
    full_page: Tuple[Dict[str, Any], ...] = ()
    working_set: Tuple[Dict[str, Any], ...] = ()
    quick_filter_text: str = ""
    current_page: int = 1
    total_pages: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    row_count: int = 0
    column_types: Dict[str, ColumnType] = field(default_factory=dict)
    sort_column: Optional[str] = None
    sort_direction: str = "asc"
    sort_columns: Tuple[SortColumn, ...] = ()
    filters: Tuple[Filter, ...] = ()
    primary_key: Tuple[str, ...] = ()
    selection: FrozenSet[Any] = frozenset()
    locally_sorted: bool = False

    def sort_spec(self) -> SortSpec:
        if self.sort_columns:
            return SortSpec.multi(self.sort_columns)
        if self.sort_column:
            return SortSpec.single(self.sort_column, self.sort_direction)
        return SortSpec()

    def sort_keys(self) -> Tuple[SortColumn, ...]:
        if self.sort_columns:
            return self.sort_columns
        if self.sort_column:
            return (SortColumn(self.sort_column, self.sort_direction),)
        return ()

    def row_key(self, row: Dict[str, Any]) -> Any:
        """Selection identity: primary-key values when known, else page position."""
        if self.primary_key:
            return tuple(row.get(col) for col in self.primary_key)
        for index, candidate in enumerate(self.full_page):
            if candidate is row:
                return index
        return None


def total_pages_for(row_count: int, page_size: int) -> int:
    """Number of pages for ``row_count`` rows; an empty result has one page."""
    return max(1, math.ceil(row_count / page_size))


def apply_update(state: ClientMirrorState, update: protocol.UpdateData) -> ClientMirrorState:
    """Replace the mirror with a fresh page from the host.

    The quick filter and selection are reset; the sort indicators are kept
    because the host already ordered the rows.
    """
    rows = tuple(update.data)
    page_size = update.page_size or state.page_size
    total_pages = total_pages_for(update.row_count, page_size)
    return replace(
        state,
        columns=tuple(update.columns),
        full_page=rows,
        working_set=rows,
        quick_filter_text="",
        current_page=min(max(1, update.page), total_pages),
        total_pages=total_pages,
        page_size=page_size,
        row_count=update.row_count,
        column_types=infer_column_types(list(update.columns), list(rows)),
        primary_key=tuple(update.primary_key),
        selection=frozenset(),
        locally_sorted=False,
    )


def apply_quick_filter(state: ClientMirrorState, text: str) -> ClientMirrorState:
    """Narrow the working set to rows containing ``text``.

    Rows keep the host's order unless the user re-sorted this page locally.
    """
    rows = quick_filter(state.full_page, state.columns, text)
    if state.locally_sorted and state.sort_keys():
        rows = sort_rows(rows, state.sort_keys(), state.column_types)
    return replace(state, quick_filter_text=text, working_set=tuple(rows))


def change_sort(state: ClientMirrorState, column: str, multi: bool = False) -> ClientMirrorState:
    """Toggle or add ``column`` in the sort and re-sort the working set locally.

    Single mode toggles the direction of the current column or replaces it.
    Multi mode toggles the column if it is already in the list and appends
    it otherwise, starting from the current single sort if there is one.
    """
    if multi:
        keys = list(state.sort_keys())
        for i, key in enumerate(keys):
            if key.column == column:
                keys[i] = SortColumn(column, "desc" if key.direction == "asc" else "asc")
                break
        else:
            keys.append(SortColumn(column, "asc"))
        state = replace(state, sort_column=None, sort_direction="asc", sort_columns=tuple(keys))
    else:
        if state.sort_column == column:
            direction = "desc" if state.sort_direction == "asc" else "asc"
        else:
            direction = "asc"
        state = replace(state, sort_column=column, sort_direction=direction, sort_columns=())

    rows = sort_rows(state.working_set, state.sort_keys(), state.column_types)
    return replace(state, working_set=tuple(rows), locally_sorted=True)


def toggle_selection(state: ClientMirrorState, row: Dict[str, Any]) -> ClientMirrorState:
    key = state.row_key(row)
    if key in state.selection:
        return replace(state, selection=state.selection - {key})
    return replace(state, selection=state.selection | {key})


def selected_rows(state: ClientMirrorState) -> List[Dict[str, Any]]:
    """Selected rows of the working set, in display order."""
    return [row for row in state.working_set if state.row_key(row) in state.selection]


def rows_to_tsv(columns: Tuple[str, ...], rows: List[Dict[str, Any]]) -> str:
    """Tab-separated text with a header line; nulls are written as NULL."""
    lines = ["\t".join(columns)]
    for row in rows:
        lines.append("\t".join(
            "NULL" if row.get(col) is None else display_text(row.get(col)) for col in columns
        ))
    return "\n".join(lines)


@dataclass
class RenderModel:
    """What a table widget needs to draw one view."""
    headers: List[str]
    rows: List[List[str]]
    empty_message: Optional[str] = None
    status: str = ""


def sort_indicator(state: ClientMirrorState, column: str) -> str:
    if state.sort_column == column:
        return " ▲" if state.sort_direction == "asc" else " ▼"
    for position, key in enumerate(state.sort_columns, 1):
        if key.column == column:
            arrow = "▲" if key.direction == "asc" else "▼"
            return f" {arrow}{position}"
    return ""


def render_model(state: ClientMirrorState, max_cell_length: int = MAX_CELL_LENGTH) -> RenderModel:
    """Headers and formatted rows for the working set.

    An empty working set still yields every header plus one message row.
    """
    headers = [f"{col}{sort_indicator(state, col)}" for col in state.columns]
    status = f"Page {state.current_page} of {state.total_pages} | {state.row_count} rows"
    if state.quick_filter_text:
        status += f" | {len(state.working_set)} shown"
    if state.selection:
        status += f" | {len(state.selection)} selected"

    if not state.working_set:
        if state.quick_filter_text:
            message = f"No rows match '{state.quick_filter_text}'"
        else:
            message = "No data"
        width = max(1, len(state.columns))
        return RenderModel(headers=headers, rows=[[message] + [""] * (width - 1)],
                           empty_message=message, status=status)

    rows = [
        [format_cell_value(row.get(col), state.column_types.get(col), max_length=max_cell_length)
         for col in state.columns]
        for row in state.working_set
    ]
    return RenderModel(headers=headers, rows=rows, status=status)


class ClientController:
    """Owns a view's mirror state and talks to the host over a channel endpoint."""

    def __init__(
        self,
        endpoint: ChannelEndpoint,
        page_size_options: Tuple[int, ...] = PAGE_SIZE_OPTIONS,
        max_cell_length: int = MAX_CELL_LENGTH,
        on_change: Optional[Callable[["ClientController"], None]] = None,
        on_notice: Optional[Callable[[str, bool], None]] = None,
    ):
        self.endpoint = endpoint
        self.page_size_options = tuple(page_size_options)
        self.max_cell_length = max_cell_length
        self.on_change = on_change
        self.on_notice = on_notice
        self.state = ClientMirrorState()
        self.last_error: Optional[str] = None
        self.last_success: Optional[str] = None

    def _send(self, command) -> None:
        logger.debug(f"Sending {command.COMMAND} from {self.endpoint.name}")
        self.endpoint.send(command)

    def _set_state(self, state: ClientMirrorState) -> None:
        self.state = state
        if self.on_change:
            self.on_change(self)

    def _notify(self, text: str, is_error: bool) -> None:
        if self.on_notice:
            self.on_notice(text, is_error)

    # Host messages

    def handle_message(self, message) -> None:
        if isinstance(message, protocol.UpdateData):
            self.last_error = None
            self._set_state(apply_update(self.state, message))
        elif isinstance(message, protocol.ShowError):
            logger.warning(f"Host error: {message.message}")
            self.last_error = message.message
            self._notify(message.message, is_error=True)
        elif isinstance(message, protocol.ShowSuccess):
            logger.info(message.message)
            self.last_success = message.message
            self._notify(message.message, is_error=False)

    def drain(self) -> int:
        """Apply every message already queued; returns how many were applied."""
        applied = 0
        while True:
            try:
                message = self.endpoint.receive_nowait()
            except ChannelError as e:
                logger.warning(f"Dropped malformed host message: {e}")
                continue
            except ChannelClosed:
                break
            if message is None:
                break
            self.handle_message(message)
            applied += 1
        return applied

    async def run(self) -> None:
        """Apply host messages until the channel closes."""
        while True:
            try:
                message = await self.endpoint.receive()
            except ChannelClosed:
                break
            except ChannelError as e:
                logger.warning(f"Dropped malformed host message: {e}")
                continue
            self.handle_message(message)

    # User intents

    def ready(self) -> None:
        self._send(protocol.Ready())

    def refresh(self) -> None:
        self._send(protocol.Refresh(page=self.state.current_page, page_size=self.state.page_size))

    def apply_quick_filter(self, text: str) -> None:
        self._set_state(apply_quick_filter(self.state, text))

    def change_sort(self, column: str, multi: bool = False) -> None:
        """Re-sort locally at once, then ask the host for the same order."""
        if column not in self.state.columns:
            return
        self._set_state(change_sort(self.state, column, multi))
        self._send(protocol.Sort(spec=self.state.sort_spec()))

    def go_to_page(self, page: int) -> bool:
        if page < 1 or page > self.state.total_pages or page == self.state.current_page:
            return False
        self._send(protocol.Navigate(page=page, page_size=self.state.page_size))
        return True

    def next_page(self) -> bool:
        return self.go_to_page(self.state.current_page + 1)

    def previous_page(self) -> bool:
        return self.go_to_page(self.state.current_page - 1)

    def change_page_size(self, page_size: int) -> None:
        if page_size not in self.page_size_options:
            raise ValueError(f"Page size must be one of {self.page_size_options}, got {page_size}")
        self._send(protocol.Navigate(page=1, page_size=page_size))

    def apply_filters(self, filters) -> None:
        """Replace the host-side filters; the host answers with page 1."""
        filters = tuple(filters)
        self._set_state(replace(self.state, filters=filters))
        self._send(protocol.ApplyFilters(filters=filters))

    def add_filter(self, column: str, operator: str, value: str = "") -> None:
        self.apply_filters(self.state.filters + (Filter(column, operator, value),))

    def clear_filters(self) -> None:
        self._set_state(replace(apply_quick_filter(self.state, ""), filters=()))
        self._send(protocol.ClearFilters())

    def execute_query(self, query: str) -> None:
        if not query.strip():
            return
        self._send(protocol.ExecuteQuery(query=query))

    def toggle_row(self, index: int) -> None:
        """Toggle selection of the working-set row at ``index``."""
        if 0 <= index < len(self.state.working_set):
            self._set_state(toggle_selection(self.state, self.state.working_set[index]))

    def select_all(self) -> None:
        keys = frozenset(self.state.row_key(row) for row in self.state.working_set)
        self._set_state(replace(self.state, selection=keys))

    def clear_selection(self) -> None:
        self._set_state(replace(self.state, selection=frozenset()))

    def copy_selection(self) -> Optional[str]:
        """Send the selected rows to the clipboard as TSV."""
        rows = selected_rows(self.state)
        if not rows:
            return None
        text = rows_to_tsv(self.state.columns, rows)
        self._send(protocol.CopyToClipboard(text=text))
        return text

    def export(self, fmt: str = "csv") -> None:
        """Export the filtered view when rows are selected, else the whole table."""
        self._send(protocol.Export(format=fmt, selected_only=bool(self.state.selection)))

    def render_model(self) -> RenderModel:
        return render_model(self.state, self.max_cell_length)
