"""Custom events for UI communication."""

from textual.message import Message


class HostNotice(Message):
    """Event when the host reported an error or a success message."""

    def __init__(self, view_key: str, message: str, is_error: bool):
        super().__init__()
        self.view_key = view_key
        self.message = message
        self.is_error = is_error
