"""tableview - paged, filterable table views over PostgreSQL in the terminal."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import click
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Input, Static, TabbedContent, TabPane

from tableview.core.data_access import DataAccess, PostgresDataAccess
from tableview.core.dispatcher import ViewManager
from tableview.core.exceptions import TableViewError
from tableview.core.export_manager import ExportManager
from tableview.core.view_state import ViewIdentifier
from tableview.ui.events import HostNotice
from tableview.ui.state import ClientController
from tableview.ui.widgets.table_view import TableViewPane
from tableview.utils.config import ConfigManager

logger = logging.getLogger(__name__)

LOG_DIR = Path.home() / '.tableview'


def configure_logging(debug: bool = False) -> Path:
    """Log to a file; with ``debug`` also log to the console."""
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / 'app.log'

    handlers: List[logging.Handler] = [logging.FileHandler(log_file, mode='a')]
    if debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        handlers.append(console_handler)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )

    # Silence other noisy loggers
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('textual').setLevel(logging.WARNING)
    return log_file


class TableViewApp(App):
    """Terminal application with one tab per open table view."""

    CSS = """
    Screen {
        background: $surface;
    }

    #query-input {
        margin: 0 1;
    }

    .toolbar {
        height: 3;
    }

    .toolbar Input {
        width: 1fr;
    }

    .status-bar {
        height: 1;
        background: $primary;
        color: $text;
        padding: 0 1;
    }

    DataTable {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+e", "focus_query", "Query"),
    ]

    def __init__(self, config_manager: ConfigManager, data_sources: Dict[str, DataAccess],
                 view_ids: Optional[List[ViewIdentifier]] = None, **kwargs):
        super().__init__(**kwargs)
        self.config_manager = config_manager
        self.data_sources = data_sources
        self.view_ids = view_ids or []
        self.view_manager: Optional[ViewManager] = None
        self.panes: Dict[str, TableViewPane] = {}
        self.tabbed_content: Optional[TabbedContent] = None

    def compose(self) -> ComposeResult:
        """Compose the main application layout."""
        yield Header(show_clock=True)
        yield Input(placeholder="SQL for the active view (Enter to run, F5 in the table to go back)",
                    id="query-input")
        self.tabbed_content = TabbedContent(id="view-tabs")
        yield self.tabbed_content
        yield Footer()

    async def on_mount(self) -> None:
        """Open a view for every requested table."""
        app_config = self.config_manager.app_config
        export_config = self.config_manager.export_config
        self.view_manager = ViewManager(
            self.data_sources,
            exporter=ExportManager(export_config.default_path, export_config.to_options()),
            clipboard=self.copy_to_clipboard,
            default_page_size=app_config.default_page_size,
        )

        if not self.view_ids:
            await self.tabbed_content.add_pane(TabPane(
                "Welcome", Static("No table selected. Start with --table CONNECTION/DATABASE/TABLE.")
            ))
            return

        for view_id in self.view_ids:
            await self.open_view(view_id)

    async def open_view(self, view_id: ViewIdentifier) -> None:
        key = str(view_id)
        if key in self.panes:
            return
        try:
            channel = self.view_manager.open_view(view_id)
        except TableViewError as e:
            logger.error(f"Cannot open {key}: {e}")
            self.notify(str(e), severity="error")
            return

        app_config = self.config_manager.app_config
        controller = ClientController(
            channel.client,
            page_size_options=app_config.page_size_options,
            max_cell_length=app_config.max_cell_length,
        )
        pane = TableViewPane(controller, key, export_format=self.config_manager.export_config.default_format)
        self.panes[key] = pane
        await self.tabbed_content.add_pane(TabPane(view_id.table_name, pane, id=f"view-{len(self.panes)}"))
        logger.info(f"Opened tab for {key}")

    def active_pane(self) -> Optional[TableViewPane]:
        if not self.tabbed_content or not self.tabbed_content.active_pane:
            return None
        for pane in self.tabbed_content.active_pane.query(TableViewPane):
            return pane
        return None

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "query-input":
            return
        pane = self.active_pane()
        if pane is None:
            self.notify("No active table view", severity="warning")
            return
        pane.controller.execute_query(event.value)

    def on_host_notice(self, event: HostNotice) -> None:
        if event.is_error:
            logger.error(f"[{event.view_key}] {event.message}")
            self.notify(event.message, severity="error", timeout=5)
        else:
            self.notify(event.message, severity="information", timeout=3)

    def action_focus_query(self) -> None:
        self.query_one("#query-input", Input).focus()

    async def action_quit(self) -> None:
        """Quit the application."""
        if self.view_manager:
            await self.view_manager.close_all()
        self.exit()


@click.command()
@click.option('--debug', is_flag=True, help='Enable debug logging to console')
@click.option('--config', '-c', type=click.Path(exists=True), help='Path to database configuration YAML file')
@click.option('--table', '-t', 'tables', multiple=True, help='View to open, as CONNECTION/DATABASE/TABLE')
def main(debug, config, tables):
    """tableview - browse PostgreSQL tables page by page."""
    log_file = configure_logging(debug)
    logger.info(f"Starting tableview, logging to {log_file}")

    try:
        view_ids = [ViewIdentifier.parse(t) for t in tables]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--table')

    config_manager = ConfigManager()
    config_manager.load_config()
    config_manager.load_databases(config)
    data_sources = {cfg.name: PostgresDataAccess(cfg) for cfg in config_manager.database_configs()}
    logger.info(f"Configured connections: {', '.join(data_sources) or 'none'}")

    app = TableViewApp(config_manager, data_sources, view_ids)
    app.run()


if __name__ == "__main__":
    main()
