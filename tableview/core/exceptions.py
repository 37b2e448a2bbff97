"""Exception types shared by the host and the rendering client."""

from typing import Optional


class TableViewError(Exception):
    """Base class for table view failures."""


class ExecutionError(TableViewError):
    """A query was rejected by the database or the connection was lost."""

    def __init__(self, message: str, query: Optional[str] = None):
        super().__init__(message)
        self.query = query


class ChannelError(TableViewError):
    """A malformed or out-of-order message arrived on a channel."""


class ChannelClosed(TableViewError):
    """The channel was closed while a receiver was waiting on it."""


class NoActiveViewError(TableViewError):
    """A command targeted a view that is not open."""

    def __init__(self, view_id):
        super().__init__(f"No active table view for {view_id}")
        self.view_id = view_id
