"""Table view widget: renders a view's mirror state and forwards user intents."""

import logging
from typing import Optional

from rich.text import Text
from textual import events
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widget import Widget
from textual.widgets import DataTable, Input, Label

from ..events import HostNotice
from ..filter_expression import FilterSyntaxError, parse_filter_expression
from ..state import ClientController

logger = logging.getLogger(__name__)


class TableViewPane(Widget):
    """Widget for browsing one table view page by page."""

    BINDINGS = [
        Binding("pagedown", "next_page", "Next Page"),
        Binding("pageup", "previous_page", "Prev Page"),
        Binding("f5", "refresh", "Refresh"),
        Binding("space", "toggle_row", "Select", show=False),
        Binding("ctrl+a", "select_all", "Select All"),
        Binding("ctrl+c", "copy_selection", "Copy"),
        Binding("f3", "export", "Export"),
        Binding("alt+f", "clear_filters", "Clear Filters"),
        Binding("]", "bigger_page", "Page Size +", show=False),
        Binding("[", "smaller_page", "Page Size -", show=False),
    ]

    def __init__(self, controller: ClientController, view_key: str, export_format: str = "csv", **kwargs):
        super().__init__(**kwargs)
        self.controller = controller
        self.view_key = view_key
        self.export_format = export_format
        self.data_table: Optional[DataTable] = None
        self.status_bar: Optional[Label] = None
        self._multi_sort_held = False
        controller.on_change = lambda _: self.refresh_view()
        controller.on_notice = self._post_notice

    def compose(self) -> ComposeResult:
        """Compose the table view widget."""
        with Vertical():
            with Horizontal(classes="toolbar"):
                yield Input(placeholder="Quick search (this page)", id="quick-search")
                yield Input(placeholder="Filter: column operator value", id="filter-input")

            self.data_table = DataTable(
                show_header=True,
                zebra_stripes=True,
                show_cursor=True,
                cursor_type="row",
            )
            yield self.data_table

            with Horizontal(classes="status-bar"):
                self.status_bar = Label("Loading...", classes="status-text")
                yield self.status_bar

    async def on_mount(self) -> None:
        self.run_worker(self.controller.run(), exclusive=True, group=f"view-{self.view_key}")
        self.controller.ready()

    def refresh_view(self) -> None:
        """Redraw the table from the controller's render model."""
        if not self.data_table:
            return

        model = self.controller.render_model()
        self.data_table.clear(columns=True)
        for header in model.headers or ["Message"]:
            self.data_table.add_column(header)

        if model.empty_message:
            self.data_table.add_row(*(Text(cell, style="dim italic") for cell in model.rows[0]))
        else:
            state = self.controller.state
            for row, display in zip(state.working_set, model.rows):
                selected = state.row_key(row) in state.selection
                self.data_table.add_row(*(self._cell(value, selected) for value in display))

        if self.status_bar:
            self.status_bar.update(model.status)

    def _cell(self, value: str, selected: bool) -> Text:
        if value == "NULL":
            return Text(value, style="dim")
        return Text(value, style="reverse" if selected else "")

    def _post_notice(self, text: str, is_error: bool) -> None:
        self.post_message(HostNotice(self.view_key, text, is_error=is_error))

    def on_mouse_down(self, event: events.MouseDown) -> None:
        # Header clicks arrive after the button press; remember the modifier
        self._multi_sort_held = event.shift or event.ctrl

    def on_data_table_header_selected(self, event: DataTable.HeaderSelected) -> None:
        """Sort by the clicked column; shift-click adds it to a multi-column sort."""
        columns = self.controller.state.columns
        if event.column_index >= len(columns):
            return
        column = columns[event.column_index]
        logger.info(f"Sort requested on {column} (multi={self._multi_sort_held})")
        self.controller.change_sort(column, multi=self._multi_sort_held)
        self._multi_sort_held = False

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "quick-search":
            self.controller.apply_quick_filter(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "filter-input":
            return
        text = event.value.strip()
        if not text:
            return
        try:
            new_filter = parse_filter_expression(text, self.controller.state.columns)
        except FilterSyntaxError as e:
            self.app.notify(str(e), severity="warning")
            return
        self.controller.add_filter(new_filter.column, new_filter.operator, new_filter.value)
        event.input.value = ""

    def action_next_page(self) -> None:
        self.controller.next_page()

    def action_previous_page(self) -> None:
        self.controller.previous_page()

    def action_refresh(self) -> None:
        self.controller.refresh()

    def action_toggle_row(self) -> None:
        if self.data_table and self.data_table.cursor_row is not None:
            self.controller.toggle_row(self.data_table.cursor_row)

    def action_select_all(self) -> None:
        self.controller.select_all()

    def action_copy_selection(self) -> None:
        if self.controller.copy_selection() is None:
            self.app.notify("No rows selected", severity="warning")

    def action_export(self) -> None:
        self.controller.export(self.export_format)

    def action_clear_filters(self) -> None:
        for input_id in ("#quick-search", "#filter-input"):
            self.query_one(input_id, Input).value = ""
        self.controller.clear_filters()

    def _step_page_size(self, step: int) -> None:
        options = self.controller.page_size_options
        current = self.controller.state.page_size
        index = options.index(current) if current in options else 0
        index = min(max(index + step, 0), len(options) - 1)
        if options[index] != current:
            self.controller.change_page_size(options[index])

    def action_bigger_page(self) -> None:
        self._step_page_size(1)

    def action_smaller_page(self) -> None:
        self._step_page_size(-1)
