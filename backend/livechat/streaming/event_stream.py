"""
Per-subscriber push channel.

An EventStream is what a visitor tab or an admin dashboard holds while its
server-push connection is open. Writes never block: events go into a
bounded queue drained by the connection's response generator, and a
subscriber that cannot keep up is treated as dead.
"""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional

from ..session.models import utcnow

logger = logging.getLogger(__name__)

Event = Dict[str, Any]


class EventStream:
    """
    A single open subscription.

    Holds only a routing key (session id or the admin key), never the
    session itself.
    """

    def __init__(
        self,
        key: str,
        max_queue_size: int = 256,
        client_id: Optional[str] = None,
    ):
        """
        Initialize the stream.

        Args:
            key: Routing key this stream is registered under
            max_queue_size: Events buffered before the stream is considered dead
            client_id: Identifier reported to the client (generated if omitted)
        """
        self.key = key
        self.client_id = client_id or uuid.uuid4().hex[:8]
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False
        self.created_at: datetime = utcnow()
        self.events_pushed = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: Event) -> bool:
        """
        Write an event without blocking.

        Returns:
            True if buffered, False if the stream is closed or its buffer is
            full (the stream is closed in that case).
        """
        if self._closed:
            return False

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.debug(f"Stream {self.client_id} ({self.key}) buffer full, closing")
            self._closed = True
            return False

        self.events_pushed += 1
        return True

    def close(self) -> None:
        """
        Close the stream. Events already buffered are still delivered,
        then iteration ends.
        """
        if self._closed:
            return

        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # The consumer sees the closed flag once the queue drains.
            pass

    async def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """
        Next buffered event.

        Returns:
            The event, or None on end of stream or timeout
        """
        if self._closed and self._queue.empty():
            return None

        try:
            if timeout is not None:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            return await self._queue.get()
        except asyncio.TimeoutError:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            event = await self.get()
            if event is None:
                break
            yield event

    def __repr__(self) -> str:
        return f"<EventStream(key={self.key}, client={self.client_id}, closed={self._closed})>"


__all__ = ["EventStream", "Event"]
