"""
Fan-out of events to open streams.

Visitor streams are grouped by session id (several tabs per session);
admin dashboards share one reserved key. Dead subscribers are pruned
while pushing; a failed push is never an error for the caller.
"""
import logging
import threading
import time
from typing import Dict, List, Mapping, Optional

from ..utils.telemetry import track_pruned_subscriber, update_stream_connections
from .event_stream import Event, EventStream

logger = logging.getLogger(__name__)

ADMIN_KEY = "__admin__"


class Broadcaster:
    """Registry of open streams keyed by session id or ``ADMIN_KEY``."""

    def __init__(self, max_queue_size: int = 256):
        """
        Args:
            max_queue_size: Per-stream buffer size for streams opened here
        """
        self.max_queue_size = max_queue_size
        self._streams: Dict[str, Dict[str, EventStream]] = {}
        self._lock = threading.RLock()

    # ===========================
    # Registration
    # ===========================

    def open(
        self,
        key: str,
        initial_event: Optional[Event] = None,
        client_id: Optional[str] = None
    ) -> EventStream:
        """
        Register a new subscriber under ``key``.

        Args:
            key: Session id, or ADMIN_KEY for a dashboard
            initial_event: Event written before anything else can reach the
                stream (used for the ``connected`` resync event)
            client_id: Identifier for the stream (generated if omitted)

        Returns:
            The stream handle
        """
        stream = EventStream(key, max_queue_size=self.max_queue_size, client_id=client_id)

        with self._lock:
            if initial_event is not None:
                stream.push(initial_event)
            self._streams.setdefault(key, {})[stream.client_id] = stream

        logger.info(f"Stream opened: key={key}, client={stream.client_id}")
        self._report_counts()
        return stream

    def remove(self, stream: EventStream) -> None:
        """Deregister a stream (connection closed by the client)."""
        with self._lock:
            group = self._streams.get(stream.key)
            if group and group.pop(stream.client_id, None) is not None:
                if not group:
                    del self._streams[stream.key]
                logger.info(f"Stream closed: key={stream.key}, client={stream.client_id}")

        stream.close()
        self._report_counts()

    def drop_key(self, key: str) -> int:
        """
        Close and forget every stream under ``key``.

        Returns:
            Number of streams dropped
        """
        with self._lock:
            group = self._streams.pop(key, {})

        for stream in group.values():
            stream.close()

        if group:
            logger.debug(f"Dropped {len(group)} streams for {key}")
            self._report_counts()

        return len(group)

    # ===========================
    # Delivery
    # ===========================

    def push(self, key: str, event: Event) -> int:
        """
        Write ``event`` to every live stream under ``key``.

        Returns:
            Number of streams the event reached
        """
        with self._lock:
            group = self._streams.get(key)
            if not group:
                return 0

            delivered = 0
            dead: List[str] = []

            for client_id, stream in group.items():
                if stream.push(event):
                    delivered += 1
                else:
                    dead.append(client_id)

            if dead:
                self._prune(key, dead)

        return delivered

    def notify_admins(self, event: Event) -> int:
        """
        Write ``event`` to every admin dashboard.

        Closed dashboards are swept out before writing.
        """
        with self._lock:
            group = self._streams.get(ADMIN_KEY, {})
            stale = [cid for cid, stream in group.items() if stream.closed]
            if stale:
                self._prune(ADMIN_KEY, stale)

            delivered = self.push(ADMIN_KEY, event)
            total = self.admin_count()

        logger.debug(f"Notified {delivered}/{total} admins: {event.get('type')}")
        return delivered

    def heartbeat(self, session_status: Optional[Mapping[str, str]] = None) -> int:
        """
        Push a keep-alive event to every open stream.

        Args:
            session_status: Current status per session id, reported to
                visitor streams (``unknown`` when missing)

        Returns:
            Number of streams that received the heartbeat
        """
        session_status = session_status or {}
        now_ms = int(time.time() * 1000)
        delivered = 0

        with self._lock:
            keys = list(self._streams.keys())
            admin_connections = self.admin_count()

            for key in keys:
                if key == ADMIN_KEY:
                    group = self._streams.get(key, {})
                    dead = []
                    for client_id, stream in group.items():
                        ok = stream.push({
                            "type": "heartbeat",
                            "clientId": client_id,
                            "timestamp": now_ms,
                            "adminConnections": admin_connections,
                        })
                        if ok:
                            delivered += 1
                        else:
                            dead.append(client_id)
                    if dead:
                        self._prune(key, dead)
                else:
                    delivered += self.push(key, {
                        "type": "heartbeat",
                        "timestamp": now_ms,
                        "sessionStatus": session_status.get(key, "unknown"),
                    })

        return delivered

    # ===========================
    # Introspection
    # ===========================

    def subscribers(self, key: str) -> List[EventStream]:
        with self._lock:
            return list(self._streams.get(key, {}).values())

    def admin_count(self) -> int:
        with self._lock:
            return len(self._streams.get(ADMIN_KEY, {}))

    def visitor_keys(self) -> List[str]:
        """Session ids that currently have at least one visitor stream."""
        with self._lock:
            return [key for key in self._streams if key != ADMIN_KEY]

    def visitor_stream_count(self) -> int:
        with self._lock:
            return sum(len(g) for k, g in self._streams.items() if k != ADMIN_KEY)

    def get_stats(self) -> Dict[str, int]:
        return {
            "admin_connections": self.admin_count(),
            "visitor_sessions": len(self.visitor_keys()),
            "visitor_streams": self.visitor_stream_count(),
        }

    # ===========================
    # Internals
    # ===========================

    def _prune(self, key: str, client_ids: List[str]) -> None:
        group = self._streams.get(key)
        if group is None:
            return

        kind = "admin" if key == ADMIN_KEY else "visitor"
        for client_id in client_ids:
            stream = group.pop(client_id, None)
            if stream is not None:
                stream.close()
                track_pruned_subscriber(kind)
                logger.debug(f"Removed dead {kind} stream {client_id} ({key})")

        if not group:
            del self._streams[key]

        self._report_counts()

    def _report_counts(self) -> None:
        update_stream_connections("admin", self.admin_count())
        update_stream_connections("visitor", self.visitor_stream_count())


__all__ = ["Broadcaster", "ADMIN_KEY"]
