"""Asynchronous, order-preserving message channel for one view.

A channel is two FIFO queues of JSON text frames, one per direction.
Sending never blocks and is never acknowledged. Each endpoint decodes
what it receives with its own decoder, so malformed frames surface as
``ChannelError`` on the receiving side only.
"""

import asyncio
import logging
from typing import Callable, Optional

from . import protocol
from .exceptions import ChannelClosed

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChannelEndpoint:
    """One side of a channel: sends to the peer, receives from it."""

    def __init__(self, name: str, outbox: asyncio.Queue, inbox: asyncio.Queue,
                 decoder: Callable[[str], object]):
        self.name = name
        self._outbox = outbox
        self._inbox = inbox
        self._decoder = decoder
        self.closed = False

    def send(self, message) -> None:
        """Encode ``message`` and queue it for the peer."""
        if self.closed:
            raise ChannelClosed(f"Channel {self.name} is closed")
        self.send_frame(protocol.encode(message))

    def send_frame(self, frame: str) -> None:
        """Queue an already encoded frame."""
        if self.closed:
            raise ChannelClosed(f"Channel {self.name} is closed")
        self._outbox.put_nowait(frame)

    async def receive(self):
        """Wait for the next frame and decode it.

        Raises:
            ChannelClosed: the channel was closed
            ChannelError: the frame was malformed; it is consumed
        """
        frame = await self._inbox.get()
        return self._decode(frame)

    def receive_nowait(self) -> Optional[object]:
        """Decode the next queued frame, or return None when nothing is queued."""
        try:
            frame = self._inbox.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return self._decode(frame)

    def pending(self) -> int:
        return self._inbox.qsize()

    def _decode(self, frame):
        if frame is _CLOSED:
            # Keep the marker so every later receive also sees the close
            self._inbox.put_nowait(_CLOSED)
            raise ChannelClosed(f"Channel {self.name} is closed")
        return self._decoder(frame)


class MessageChannel:
    """Duplex channel between the host and the rendering client of one view."""

    def __init__(self, name: str = "view"):
        self.name = name
        self._to_host: asyncio.Queue = asyncio.Queue()
        self._to_client: asyncio.Queue = asyncio.Queue()
        self.host = ChannelEndpoint(f"{name}:host", self._to_client, self._to_host,
                                    protocol.decode_command)
        self.client = ChannelEndpoint(f"{name}:client", self._to_host, self._to_client,
                                      protocol.decode_host_message)

    def close(self) -> None:
        """Wake any receiver on either side with ``ChannelClosed``."""
        if self.host.closed:
            return
        self.host.closed = True
        self.client.closed = True
        self._to_host.put_nowait(_CLOSED)
        self._to_client.put_nowait(_CLOSED)
        logger.debug(f"Channel {self.name} closed")
