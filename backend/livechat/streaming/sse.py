"""
Server-Sent Events framing for EventStream subscribers.
"""
import asyncio
import json
import logging
from typing import AsyncIterator

from starlette.responses import StreamingResponse

from .broadcaster import Broadcaster
from .event_stream import Event, EventStream

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: Event) -> str:
    """Encode one event as a ``data:`` frame."""
    return f"data: {json.dumps(event, default=str)}\n\n"


async def sse_frames(stream: EventStream, broadcaster: Broadcaster) -> AsyncIterator[str]:
    """
    Drain ``stream`` as SSE frames until it closes or the client goes away.
    The stream is always deregistered on exit.
    """
    try:
        async for event in stream:
            yield format_sse(event)
    except asyncio.CancelledError:
        logger.debug(f"Stream {stream.client_id} cancelled by client disconnect")
        raise
    finally:
        broadcaster.remove(stream)


def sse_response(stream: EventStream, broadcaster: Broadcaster) -> StreamingResponse:
    return StreamingResponse(
        sse_frames(stream, broadcaster),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


__all__ = ["format_sse", "sse_frames", "sse_response", "SSE_HEADERS"]
