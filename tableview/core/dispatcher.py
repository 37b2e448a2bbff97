"""Host-side command handling for open table views."""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from . import protocol
from .channel import ChannelEndpoint, MessageChannel
from .data_access import ColumnInfo, DataAccess, QueryResult
from .exceptions import ChannelClosed, ChannelError, TableViewError
from .export_manager import ExportFormat, ExportManager
from .query_builder import BuildMode, build_count_query, build_query
from .view_state import (
    TableViewState,
    ViewIdentifier,
    ViewStateStore,
    apply_filters,
    apply_sort,
    clear_filters,
    navigate,
    use_custom_query,
    use_table_source,
)

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Applies client commands to one view's state and pushes results back.

    Commands are handled strictly one at a time. A failed query leaves the
    already applied state change in place; the failure is reported to the
    client and the next successful command re-synchronizes the display.
    """

    def __init__(
        self,
        view_id: ViewIdentifier,
        store: ViewStateStore,
        data_access: DataAccess,
        endpoint: ChannelEndpoint,
        exporter: Optional[ExportManager] = None,
        clipboard: Optional[Callable[[str], None]] = None,
    ):
        self.view_id = view_id
        self.store = store
        self.data_access = data_access
        self.endpoint = endpoint
        self.exporter = exporter
        self.clipboard = clipboard
        self._columns: Optional[List[ColumnInfo]] = None
        self._handlers = {
            protocol.Ready: self._on_ready,
            protocol.Refresh: self._on_refresh,
            protocol.Navigate: self._on_navigate,
            protocol.Sort: self._on_sort,
            protocol.ApplyFilters: self._on_filter,
            protocol.ClearFilters: self._on_clear_filters,
            protocol.ExecuteQuery: self._on_execute_query,
            protocol.Export: self._on_export,
            protocol.CopyToClipboard: self._on_copy,
        }

    async def run(self) -> None:
        """Consume commands until the channel closes."""
        logger.info(f"Dispatcher started for {self.view_id}")
        while True:
            try:
                command = await self.endpoint.receive()
            except ChannelClosed:
                break
            except ChannelError as e:
                logger.warning(f"Dropped malformed message for {self.view_id}: {e}")
                continue
            await self.handle(command)
        logger.info(f"Dispatcher stopped for {self.view_id}")

    async def handle(self, command) -> bool:
        """Handle one command; returns False if it was rejected or failed."""
        if self.store.get(self.view_id) is None:
            logger.warning(f"Rejected '{command.COMMAND}': no active view {self.view_id}")
            self._send(protocol.ShowError(message=f"No active table view for {self.view_id}."))
            return False

        handler = self._handlers[type(command)]
        try:
            await handler(command)
            return True
        except (TableViewError, OSError) as e:
            logger.error(f"'{command.COMMAND}' failed for {self.view_id}: {e}")
            self._send(protocol.ShowError(message=f"Failed to {command.COMMAND}: {e}"))
        except Exception as e:
            logger.exception(f"Unexpected error handling '{command.COMMAND}' for {self.view_id}")
            self._send(protocol.ShowError(message=f"Failed to {command.COMMAND}: {e}"))
        return False

    def _send(self, message) -> None:
        try:
            self.endpoint.send(message)
        except ChannelClosed:
            logger.debug(f"Discarded {message.COMMAND} for closed view {self.view_id}")

    async def _describe(self) -> List[ColumnInfo]:
        if self._columns is None:
            self._columns = await self.data_access.describe(
                self.view_id.database_name, self.view_id.table_name
            )
        return self._columns

    async def _count(self, state: TableViewState) -> int:
        result = await self.data_access.execute(build_count_query(state))
        if not result.rows:
            return 0
        return int(next(iter(result.rows[0].values())) or 0)

    async def _push_page(self) -> None:
        state = self.store.require(self.view_id)
        result = await self.data_access.execute(build_query(state, BuildMode.PAGE))
        total = await self._count(state)

        if state.custom_query:
            columns, primary_key = result.columns, []
        else:
            described = await self._describe()
            columns = [c.name for c in described] or result.columns
            primary_key = [c.name for c in described if c.primary_key]

        self._send(protocol.UpdateData(
            data=result.rows,
            columns=columns,
            row_count=total,
            page=state.page,
            page_size=state.page_size,
            primary_key=primary_key,
        ))

    async def _on_ready(self, command: protocol.Ready) -> None:
        await self._push_page()

    async def _on_refresh(self, command: protocol.Refresh) -> None:
        def transition(state):
            state = use_table_source(state)
            if command.page or command.page_size:
                state = navigate(state, command.page or state.page, command.page_size)
            return state

        self.store.update(self.view_id, transition)
        self._columns = None
        await self._push_page()

    async def _on_navigate(self, command: protocol.Navigate) -> None:
        self.store.update(self.view_id, lambda s: navigate(s, command.page, command.page_size))
        await self._push_page()

    async def _on_sort(self, command: protocol.Sort) -> None:
        self.store.update(self.view_id, lambda s: apply_sort(s, command.spec, command.filters))
        await self._push_page()

    async def _on_filter(self, command: protocol.ApplyFilters) -> None:
        self.store.update(self.view_id, lambda s: apply_filters(s, command.filters, command.sort))
        await self._push_page()

    async def _on_clear_filters(self, command: protocol.ClearFilters) -> None:
        self.store.update(self.view_id, clear_filters)
        await self._push_page()

    async def _on_execute_query(self, command: protocol.ExecuteQuery) -> None:
        result = await self.data_access.execute(command.query)
        if not result.columns:
            self._send(protocol.ShowSuccess(message="Query executed successfully."))
            return

        # The first page comes from the wrapped, counted query like every later one
        self.store.update(self.view_id, lambda s: use_custom_query(s, command.query))
        await self._push_page()

    async def _on_export(self, command: protocol.Export) -> None:
        if self.exporter is None:
            raise TableViewError("Export is not available for this view")
        try:
            fmt = ExportFormat(command.format)
        except ValueError:
            self._send(protocol.ShowError(message=f"Unsupported export format: {command.format}"))
            return

        state = self.store.require(self.view_id)
        if command.selected_only:
            query = build_query(state.export_snapshot(), BuildMode.EXPORT)
        else:
            query = build_query(TableViewState(view_id=self.view_id), BuildMode.EXPORT)

        result = await self.data_access.execute(query)
        if not state.custom_query:
            described = await self._describe()
            if described:
                result = QueryResult(columns=[c.name for c in described], rows=result.rows)

        path = await self.exporter.export(result, self.view_id.table_name, fmt,
                                          filtered=command.selected_only)
        self._send(protocol.ShowSuccess(
            message=f'Table "{self.view_id.table_name}" exported as {fmt.value} to {path}'
        ))

    async def _on_copy(self, command: protocol.CopyToClipboard) -> None:
        if self.clipboard is None:
            logger.warning(f"No clipboard available; dropped {len(command.text)} characters")
            return
        self.clipboard(command.text)
        self._send(protocol.ShowSuccess(message="Copied to clipboard."))


class ViewManager:
    """Opens and closes views, one channel and dispatcher task per view."""

    def __init__(
        self,
        data_sources: Dict[str, DataAccess],
        exporter: Optional[ExportManager] = None,
        clipboard: Optional[Callable[[str], None]] = None,
        default_page_size: int = 100,
    ):
        self.data_sources = data_sources
        self.exporter = exporter
        self.clipboard = clipboard
        self.store = ViewStateStore(default_page_size=default_page_size)
        self.channels: Dict[ViewIdentifier, MessageChannel] = {}
        self.dispatchers: Dict[ViewIdentifier, CommandDispatcher] = {}
        self._tasks: Dict[ViewIdentifier, asyncio.Task] = {}

    def open_view(self, view_id: ViewIdentifier, page_size: Optional[int] = None) -> MessageChannel:
        """Seed state for ``view_id`` and start its dispatcher.

        Must be called from a running event loop. Reopening an open view
        returns its existing channel.
        """
        if view_id in self.channels:
            return self.channels[view_id]

        data_access = self.data_sources.get(view_id.connection_name)
        if data_access is None:
            raise TableViewError(f"Unknown connection: {view_id.connection_name}")

        self.store.open(view_id, page_size)
        channel = MessageChannel(str(view_id))
        dispatcher = CommandDispatcher(view_id, self.store, data_access, channel.host,
                                       exporter=self.exporter, clipboard=self.clipboard)
        self.channels[view_id] = channel
        self.dispatchers[view_id] = dispatcher
        self._tasks[view_id] = asyncio.create_task(dispatcher.run())
        return channel

    async def close_view(self, view_id: ViewIdentifier) -> None:
        """Stop the view's dispatcher and destroy its state."""
        channel = self.channels.pop(view_id, None)
        self.dispatchers.pop(view_id, None)
        task = self._tasks.pop(view_id, None)
        self.store.close(view_id)
        if channel is not None:
            channel.close()
        if task is not None:
            await task

    async def close_all(self) -> None:
        for view_id in list(self.channels):
            await self.close_view(view_id)
        await asyncio.gather(*(source.close() for source in self.data_sources.values()),
                             return_exceptions=True)
