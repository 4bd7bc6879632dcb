"""
Timeout sweeper.

Drives the time-based transitions of live sessions:

- full sweep: waiting sessions past their claim deadline become
  ``timed_out`` (kept for inspection); sessions older than the inactivity
  timeout are removed whatever their status
- warning sweep: admins get one ``session_warning`` per waiting session
  shortly before its claim deadline

Version: 1.0.0
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..config import Settings
from ..session import LiveSession, SessionStatus, SessionStore, utcnow
from ..streaming import Broadcaster
from ..utils.telemetry import track_transition, update_live_sessions
from .outbox import SideEffectOutbox
from .recorder import ConversationRecorder

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Human wording for a timeout: ``2 minutes``, ``1 minute``, ``45 seconds``."""
    seconds = int(seconds)
    if seconds and seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"


@dataclass
class SweepResult:
    """Sessions affected by one full sweep."""
    timed_out: List[str] = field(default_factory=list)
    expired: List[str] = field(default_factory=list)


class TimeoutSweeper:
    """Applies claim timeouts, inactivity expiry and claim warnings."""

    def __init__(
        self,
        store: SessionStore,
        broadcaster: Broadcaster,
        settings: Settings,
        outbox: Optional[SideEffectOutbox] = None,
        recorder: Optional[ConversationRecorder] = None
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.settings = settings
        self.outbox = outbox
        self.recorder = recorder

    @property
    def timeout_message(self) -> str:
        window = format_duration(self.settings.claim_timeout_seconds)
        return (
            f"No agents were available to connect with you within {window}. "
            "Please try again later or leave a message."
        )

    def _persist(self, name: str, method: str, session_id: str, *args) -> None:
        if self.recorder is None or self.outbox is None:
            return
        self.outbox.submit(
            name,
            getattr(self.recorder, method),
            session_id,
            *args,
            ordering_key=session_id
        )

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Full pass: claim timeouts first, then inactivity expiry.

        A session timed out in this pass is not expired in the same pass.
        """
        now = now or utcnow()
        result = SweepResult()
        window = format_duration(self.settings.claim_timeout_seconds)

        def _time_out(session: LiveSession) -> Optional[str]:
            if not session.is_waiting or now < session.timeout_at:
                return None

            logger.info(f"⏰ Session timeout ({window}): {session.id}")

            self.broadcaster.push(session.id, {
                "type": "timeout",
                "message": self.timeout_message,
                "sessionId": session.id,
            })
            self.broadcaster.notify_admins({
                "type": "session_timeout",
                "sessionId": session.id,
                "userName": session.visitor_name,
                "reason": f"No agent claimed within {window}",
            })

            session.status = SessionStatus.TIMED_OUT
            session.timeout_at = now
            return session.id

        result.timed_out = await self.store.for_each(_time_out)

        just_timed_out = set(result.timed_out)
        inactivity = self.settings.inactivity_timeout_seconds
        expired = await self.store.pop_where(
            lambda s: s.id not in just_timed_out and s.age_seconds(now) > inactivity
        )

        for session in expired:
            logger.info(f"Cleaning up expired session: {session.id}")
            self.broadcaster.notify_admins({
                "type": "session_expired",
                "sessionId": session.id,
                "userName": session.visitor_name,
            })
            self.broadcaster.drop_key(session.id)
            result.expired.append(session.id)

        for session_id in result.timed_out:
            self._persist("log_timeout", "log_event", session_id, "timeout", f"No agent claimed within {window}")
        for session_id in result.expired:
            self._persist("log_expired", "log_event", session_id, "expired", "Session expired after inactivity")
            self._persist("record_end", "record_end", session_id, "expired")

        track_transition("timed_out", len(result.timed_out))
        track_transition("expired", len(result.expired))

        if result.timed_out or result.expired:
            logger.info(
                f"Cleaned up {len(result.expired)} expired sessions, "
                f"{len(result.timed_out)} timed out sessions"
            )

        stats = await self.store.get_stats()
        update_live_sessions(stats["by_status"])
        return result

    async def warn(self, now: Optional[datetime] = None) -> List[str]:
        """
        Warn admins about waiting sessions close to their claim deadline.

        Returns:
            Ids of the sessions warned in this pass
        """
        now = now or utcnow()
        threshold = self.settings.warning_threshold_seconds

        def _warn(session: LiveSession) -> Optional[str]:
            if not session.is_waiting or session.warning_sent:
                return None

            remaining = session.claim_time_remaining(now)
            if not 0 < remaining <= threshold:
                return None

            seconds = int(math.ceil(remaining))
            logger.info(f"⚠️ Session {session.id} will timeout in {seconds} seconds")

            self.broadcaster.notify_admins({
                "type": "session_warning",
                "sessionId": session.id,
                "userName": session.visitor_name,
                "secondsRemaining": seconds,
                "message": f"Session will timeout in {seconds} seconds",
            })
            session.warning_sent = True
            return session.id

        return await self.store.for_each(_warn)


__all__ = ["TimeoutSweeper", "SweepResult", "format_duration"]
