"""
Server-push streaming package.
"""
from .event_stream import Event, EventStream
from .broadcaster import ADMIN_KEY, Broadcaster
from .sse import format_sse, sse_frames, sse_response

__all__ = [
    "Event",
    "EventStream",
    "ADMIN_KEY",
    "Broadcaster",
    "format_sse",
    "sse_frames",
    "sse_response",
]
