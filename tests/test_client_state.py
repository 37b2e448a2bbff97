"""
Tests for the client mirror state and controller
"""

import pytest

from tableview.core import protocol
from tableview.core.query_builder import Filter, SortColumn
from tableview.core.view_state import SortSpec
from tableview.ui.state import (
    ClientController,
    ClientMirrorState,
    apply_quick_filter,
    apply_update,
    change_sort,
    render_model,
    rows_to_tsv,
    total_pages_for,
)
from tableview.ui.type_detector import ColumnType


def update(rows, columns=("id", "name", "age", "joined"), row_count=None, page=1, page_size=10,
           primary_key=("id",)):
    return protocol.UpdateData(
        data=list(rows),
        columns=list(columns),
        row_count=len(rows) if row_count is None else row_count,
        page=page,
        page_size=page_size,
        primary_key=list(primary_key),
    )


def sent(channel):
    commands = []
    while True:
        command = channel.host.receive_nowait()
        if command is None:
            return commands
        commands.append(command)


@pytest.mark.parametrize("rows, size, pages", [(0, 10, 1), (1, 10, 1), (10, 10, 1), (11, 10, 2), (250, 100, 3)])
def test_total_pages(rows, size, pages):
    assert total_pages_for(rows, size) == pages


class TestMirrorTransitions:
    """Test pure mirror transitions"""

    def test_update_replaces_everything(self, sample_rows):
        state = apply_quick_filter(apply_update(ClientMirrorState(), update(sample_rows)), "bob")
        state = apply_update(state, update(sample_rows[:1], row_count=31, page=2))

        assert state.quick_filter_text == ""
        assert state.working_set == state.full_page == (sample_rows[0],)
        assert (state.current_page, state.total_pages, state.row_count) == (2, 4, 31)
        assert state.column_types["joined"] == ColumnType.DATE
        assert state.selection == frozenset()

    def test_current_page_is_clamped(self, sample_rows):
        state = apply_update(ClientMirrorState(), update(sample_rows, row_count=3, page=5))
        assert state.current_page == 1

    def test_quick_filter_and_restore(self, sample_rows):
        state = apply_update(ClientMirrorState(), update(sample_rows))
        filtered = apply_quick_filter(state, "ALI")
        assert [r["id"] for r in filtered.working_set] == [1]
        assert apply_quick_filter(filtered, "").working_set == state.full_page

    def test_single_sort_toggles(self, sample_rows):
        state = apply_update(ClientMirrorState(), update(sample_rows))
        state = change_sort(state, "age")
        assert (state.sort_column, state.sort_direction) == ("age", "asc")
        assert [r["id"] for r in state.working_set] == [2, 3, 1]
        state = change_sort(state, "age")
        assert state.sort_direction == "desc"
        state = change_sort(state, "name")
        assert (state.sort_column, state.sort_direction) == ("name", "asc")

    def test_multi_sort_appends_and_toggles(self, sample_rows):
        state = apply_update(ClientMirrorState(), update(sample_rows))
        state = change_sort(state, "name")
        state = change_sort(state, "age", multi=True)
        assert state.sort_column is None
        assert state.sort_columns == (SortColumn("name", "asc"), SortColumn("age", "asc"))
        state = change_sort(state, "name", multi=True)
        assert state.sort_columns == (SortColumn("name", "desc"), SortColumn("age", "asc"))
        state = change_sort(state, "id")
        assert state.sort_columns == ()

    def test_quick_filter_keeps_local_sort(self, sample_rows):
        state = change_sort(apply_update(ClientMirrorState(), update(sample_rows)), "name", multi=False)
        state = change_sort(state, "name")
        filtered = apply_quick_filter(state, "l")
        assert [r["name"] for r in filtered.working_set] == ["Charlie", "Alice"]

    def test_quick_filter_keeps_host_order(self, sample_rows):
        state = change_sort(apply_update(ClientMirrorState(), update(sample_rows)), "age")
        first, second, third = sample_rows
        # Host sorted age ascending with NULLs last
        state = apply_update(state, update([third, first, second]))
        assert not state.locally_sorted

        narrowed = apply_quick_filter(state, "2")
        assert [r["id"] for r in narrowed.working_set] == [3, 1, 2]
        assert apply_quick_filter(narrowed, "").working_set == state.full_page
        assert apply_quick_filter(state, "").working_set == state.full_page


class TestRenderModel:
    """Test what the table widget draws"""

    def test_empty_page_keeps_headers(self):
        state = apply_update(ClientMirrorState(), update([], columns=("x", "y")))
        model = render_model(state)
        assert model.headers == ["x", "y"]
        assert model.rows == [["No data", ""]]
        assert model.empty_message == "No data"

    def test_no_quick_filter_match(self, sample_rows):
        state = apply_quick_filter(apply_update(ClientMirrorState(), update(sample_rows)), "zzz")
        model = render_model(state)
        assert model.empty_message == "No rows match 'zzz'"
        assert len(model.headers) == 4

    def test_rows_are_formatted(self, sample_rows):
        state = apply_update(ClientMirrorState(), update(sample_rows))
        model = render_model(state)
        assert model.rows[1] == ["2", "bob", "NULL", "2022-11-30"]
        assert model.status == "Page 1 of 1 | 3 rows"

    def test_sort_indicators(self, sample_rows):
        state = apply_update(ClientMirrorState(), update(sample_rows))
        state = change_sort(change_sort(state, "age", multi=True), "name", multi=True)
        assert render_model(state).headers == ["id", "name ▲2", "age ▲1", "joined"]


def test_rows_to_tsv():
    text = rows_to_tsv(("a", "b"), [{"a": 1, "b": None}, {"a": True, "b": "x"}])
    assert text == "a\tb\n1\tNULL\ntrue\tx"


class TestClientController:
    """Test user intents turning into commands"""

    def make(self, channel, sample_rows, **kwargs):
        controller = ClientController(channel.client, **kwargs)
        controller.handle_message(update(sample_rows, row_count=45, page=2))
        return controller

    def test_drain_applies_host_messages(self, channel, sample_rows):
        controller = ClientController(channel.client)
        channel.host.send(update(sample_rows))
        channel.host.send_frame("not json")
        channel.host.send(protocol.ShowError(message="boom"))

        assert controller.drain() == 2
        assert len(controller.state.full_page) == 3
        assert controller.last_error == "boom"

    def test_change_sort_emits_sort(self, channel, sample_rows):
        controller = self.make(channel, sample_rows)
        controller.change_sort("age", multi=True)
        assert sent(channel) == [protocol.Sort(spec=SortSpec.multi([SortColumn("age", "asc")]))]

    def test_change_sort_ignores_unknown_column(self, channel, sample_rows):
        controller = self.make(channel, sample_rows)
        controller.change_sort("missing")
        assert sent(channel) == []

    def test_paging(self, channel, sample_rows):
        controller = self.make(channel, sample_rows)
        assert controller.next_page()
        assert controller.previous_page()
        assert not controller.go_to_page(2)
        assert not controller.go_to_page(6)
        assert sent(channel) == [protocol.Navigate(page=3, page_size=10), protocol.Navigate(page=1, page_size=10)]

    def test_change_page_size(self, channel, sample_rows):
        controller = self.make(channel, sample_rows)
        controller.change_page_size(50)
        assert sent(channel) == [protocol.Navigate(page=1, page_size=50)]
        with pytest.raises(ValueError):
            controller.change_page_size(7)

    def test_filters(self, channel, sample_rows):
        controller = self.make(channel, sample_rows)
        controller.add_filter("age", ">", "20")
        controller.add_filter("name", "LIKE", "a")
        controller.apply_quick_filter("bob")
        controller.clear_filters()

        commands = sent(channel)
        assert commands[1] == protocol.ApplyFilters(
            filters=(Filter("age", ">", "20"), Filter("name", "LIKE", "a"))
        )
        assert commands[2] == protocol.ClearFilters()
        assert controller.state.filters == ()
        assert controller.state.quick_filter_text == ""

    def test_selection_copy_and_export(self, channel, sample_rows):
        controller = self.make(channel, sample_rows)
        controller.export("json")
        controller.toggle_row(2)
        controller.toggle_row(0)
        text = controller.copy_selection()
        controller.export("csv")

        assert text == "id\tname\tage\tjoined\n1\tAlice\t30\t2023-01-05\n3\tCharlie\t25\tNULL"
        assert sent(channel) == [
            protocol.Export(format="json", selected_only=False),
            protocol.CopyToClipboard(text=text),
            protocol.Export(format="csv", selected_only=True),
        ]

    def test_selection_uses_primary_key(self, channel, sample_rows):
        controller = self.make(channel, sample_rows)
        controller.toggle_row(0)
        assert controller.state.selection == {(1,)}
        controller.apply_quick_filter("charlie")
        controller.toggle_row(0)
        assert controller.state.selection == {(1,), (3,)}

    def test_selection_without_primary_key(self, channel, sample_rows):
        controller = ClientController(channel.client)
        controller.handle_message(update(sample_rows, primary_key=()))
        controller.select_all()
        assert controller.state.selection == {0, 1, 2}
        controller.toggle_row(1)
        assert controller.state.selection == {0, 2}

    def test_update_clears_selection(self, channel, sample_rows):
        controller = self.make(channel, sample_rows)
        controller.select_all()
        controller.handle_message(update(sample_rows))
        assert controller.state.selection == frozenset()
        assert controller.copy_selection() is None

    def test_on_change_callback(self, channel, sample_rows):
        seen = []
        controller = ClientController(channel.client, on_change=lambda c: seen.append(c.state.row_count))
        controller.handle_message(update(sample_rows, row_count=3))
        assert seen == [3]

    def test_every_host_notice_is_reported(self, channel, sample_rows):
        notices = []
        controller = ClientController(channel.client, on_notice=lambda text, is_error: notices.append((text, is_error)))
        for message in (
            protocol.ShowError(message="Failed to navigate: connection lost"),
            protocol.ShowError(message="Failed to navigate: connection lost"),
            protocol.ShowSuccess(message="Copied to clipboard."),
            protocol.ShowError(message="Failed to navigate: connection lost"),
        ):
            channel.host.send(message)

        assert controller.drain() == 4
        assert notices == [
            ("Failed to navigate: connection lost", True),
            ("Failed to navigate: connection lost", True),
            ("Copied to clipboard.", False),
            ("Failed to navigate: connection lost", True),
        ]
