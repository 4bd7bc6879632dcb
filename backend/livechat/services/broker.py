"""
Live session broker.

Orchestrates the visitor/agent session lifecycle on top of the session
store and the broadcaster:

- request -> waiting session, admins alerted
- claim -> exactly one agent wins, visitor greeted
- message relay in both directions
- transfer back to a role queue, close, end, rating

State changes and the events they produce happen under the store lock so
every subscriber sees them in mutation order. Persistence and push
notifications are queued on the outbox after the lock is released.

Version: 1.0.0
"""
import asyncio
import logging
import math
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from ..config import Settings
from ..session import (
    ChatMessage,
    InvalidInputError,
    InvalidRoleError,
    LiveSession,
    MessageSender,
    SessionAlreadyClaimedError,
    SessionNotFoundError,
    SessionStatus,
    SessionStore,
    SessionTimedOutError,
    isoformat,
    utcnow,
)
from ..streaming import ADMIN_KEY, Broadcaster, EventStream
from ..utils.telemetry import (
    metrics_collector,
    track_claim,
    track_session_created,
    track_transition,
    update_live_sessions,
)
from .outbox import SideEffectOutbox
from .push_service import PushNotifier
from .recorder import ConversationRecorder

logger = logging.getLogger(__name__)

NOT_RATED = "Not Rated"
VALID_RATINGS = ("Good", "Needs Improvement", NOT_RATED)

DEFAULT_VISITOR_NAME = "Guest"


def normalize_rating(value: Optional[str]) -> str:
    """Unknown rating values collapse to ``Not Rated``."""
    return value if value in VALID_RATINGS else NOT_RATED


def transcript_line(sender_name: str, text: str, now: Optional[datetime] = None) -> str:
    """One line of the persisted conversation text, stamped in server local time."""
    stamp = (now or utcnow()).astimezone().strftime("%m/%d/%Y, %I:%M:%S %p")
    return f"[{sender_name} - {stamp}] {text}\n"


def _clean_visitor_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name or name.lower() == "null":
        return DEFAULT_VISITOR_NAME
    return name


class SessionBroker:
    """
    Session lifecycle API used by the HTTP layer.

    Collaborators (recorder, push notifier) are optional; without them
    the broker runs purely in memory.
    """

    def __init__(
        self,
        store: SessionStore,
        broadcaster: Broadcaster,
        outbox: SideEffectOutbox,
        settings: Settings,
        recorder: Optional[ConversationRecorder] = None,
        push_notifier: Optional[PushNotifier] = None
    ):
        """
        Initialize the broker.

        Args:
            store: Authoritative session registry
            broadcaster: Stream registry for visitor and admin fan-out
            outbox: Queue for fire-and-forget side effects
            settings: Timers, roles and feature switches
            recorder: Conversation persistence (optional)
            push_notifier: Admin push alerts (optional)
        """
        self.store = store
        self.broadcaster = broadcaster
        self.outbox = outbox
        self.settings = settings
        self.recorder = recorder
        self.push_notifier = push_notifier

        self._background: Set[asyncio.Task] = set()

        logger.info(
            f"SessionBroker initialized (recorder={'on' if recorder else 'off'}, "
            f"push={'on' if push_notifier else 'off'})"
        )

    # ===========================
    # Side effects
    # ===========================

    def _persist(self, name: str, method: str, session_id: str, *args) -> None:
        """Queue a recorder call, ordered per session."""
        if self.recorder is None:
            return

        self.outbox.submit(
            name,
            getattr(self.recorder, method),
            session_id,
            *args,
            ordering_key=session_id
        )

    def _log_event(self, session_id: str, action: str, details: Optional[str] = None) -> None:
        self._persist(f"log_{action}", "log_event", session_id, action, details)

    # ===========================
    # Session lifecycle
    # ===========================

    async def request_session(
        self,
        visitor_name: Optional[str] = None,
        visitor_email: Optional[str] = None,
        requested_role: Optional[str] = None,
        initial_messages: Optional[Iterable[Dict[str, Any]]] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Create a waiting session for a visitor.

        Returns:
            ``{"sessionId", "timeout", "message"}``; returns before any
            persistence or push work has run.

        Raises:
            InvalidInputError: If an initial message is malformed
        """
        now = now or utcnow()
        name = _clean_visitor_name(visitor_name)
        email = (visitor_email or "").strip()
        role = (requested_role or "").strip().lower() or self.settings.default_role

        try:
            history = [ChatMessage.model_validate(m) for m in (initial_messages or [])]
        except ValidationError as e:
            raise InvalidInputError(f"Invalid initial messages: {e.error_count()} errors")

        claim_timeout = self.settings.claim_timeout_seconds
        session = LiveSession(
            id=str(uuid.uuid4()),
            visitor_name=name,
            visitor_email=email,
            requested_role=role,
            messages=history,
            created_at=now,
            last_activity=now,
            timeout_at=now + timedelta(seconds=claim_timeout),
        )
        session_id = await self.store.create(session)

        track_session_created(role)
        logger.info(f"✓ Session requested: {session_id} ({name}, role={role})")

        self._persist("create_conversation", "create_conversation", session_id, name, email)
        if self.push_notifier is not None:
            self.outbox.submit(
                "push_new_session",
                self.push_notifier.notify_new_session,
                session_id,
                name,
                role,
            )

        self.broadcaster.notify_admins({
            "type": "new_session",
            "sessionId": session_id,
            "userName": name,
            "userEmail": email,
            "requestedRole": role,
            "timestamp": now.isoformat(),
            "timeoutIn": int(claim_timeout),
        })

        return {
            "sessionId": session_id,
            "timeout": int(claim_timeout),
            "message": "Live agent session created. Waiting for agent assignment...",
        }

    async def claim_session(
        self,
        session_id: str,
        agent_name: str,
        agent_role: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> LiveSession:
        """
        Assign an agent to a waiting session.

        Exactly one of several concurrent claims succeeds: the check and
        the assignment run in one store mutation.

        Returns:
            Snapshot of the claimed session

        Raises:
            SessionNotFoundError, SessionTimedOutError, SessionAlreadyClaimedError,
            InvalidInputError
        """
        if not session_id or not agent_name:
            raise InvalidInputError("Session ID and agent name are required")

        now = now or utcnow()
        role = (agent_role or self.settings.default_role).strip().lower()

        def _claim(session: LiveSession) -> LiveSession:
            if session.is_timed_out:
                raise SessionTimedOutError(session.id)
            if session.agent_name:
                raise SessionAlreadyClaimedError(session.id, session.agent_name)

            session.agent_name = agent_name
            session.assigned_role = role
            session.status = SessionStatus.CLAIMED
            session.claimed_at = now
            session.touch(now)

            welcome = ChatMessage(
                sender=MessageSender.AGENT.value,
                text=f"Hello, I'm {agent_name} from the {role} team. How can I help you today?",
                name=agent_name,
                timestamp=now,
            )
            session.append_message(welcome, now)

            self.broadcaster.notify_admins({
                "type": "assigned",
                "sessionId": session.id,
                "agentName": agent_name,
                "agentRole": role,
                "userName": session.visitor_name,
                "requestedRole": session.requested_role,
                "timestamp": now.isoformat(),
            })
            self.broadcaster.push(session.id, {
                "type": "agent_connected",
                "message": f"Connected to {agent_name} from {role} team",
                "agentName": agent_name,
                "timestamp": now.isoformat(),
            })
            self.broadcaster.push(session.id, welcome.to_dict())

            return session.model_copy(deep=True)

        try:
            claimed = await self.store.update(session_id, _claim)
        except SessionAlreadyClaimedError:
            track_claim("already_claimed")
            logger.info(f"Claim rejected, {session_id} already claimed ({agent_name})")
            raise
        except SessionTimedOutError:
            track_claim("timed_out")
            logger.info(f"Claim rejected, {session_id} timed out ({agent_name})")
            raise

        track_claim("success")
        track_transition("claimed")
        logger.info(f"✓ Session {session_id} claimed by {agent_name} ({role})")

        self._persist("record_claim", "record_claim", session_id, agent_name, role)
        return claimed

    async def send_message(
        self,
        session_id: str,
        text: Optional[str],
        sender: Optional[str] = MessageSender.USER.value,
        name: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> ChatMessage:
        """
        Append a message and route it to the other side.

        Visitor messages go to admin dashboards; agent messages go to the
        session's visitor streams.

        Returns:
            The stored message

        Raises:
            InvalidInputError: Missing session id or empty text
            SessionNotFoundError, SessionTimedOutError
        """
        if not session_id or not text or not text.strip():
            raise InvalidInputError("Session ID and text are required")

        now = now or utcnow()
        from_agent = sender == MessageSender.AGENT.value

        def _append(session: LiveSession) -> ChatMessage:
            if session.is_timed_out:
                raise SessionTimedOutError(session.id)

            if from_agent:
                display = name or session.agent_name or "Agent"
            else:
                display = name or session.visitor_name or DEFAULT_VISITOR_NAME

            message = ChatMessage(
                sender=MessageSender.AGENT.value if from_agent else MessageSender.USER.value,
                text=text,
                name=display,
                timestamp=now,
            )
            session.append_message(message, now)

            if from_agent:
                self.broadcaster.push(session.id, message.to_dict())
            else:
                self.broadcaster.notify_admins({
                    "type": "message",
                    "sessionId": session.id,
                    **message.to_dict(),
                    "userName": display,
                })

            return message

        message = await self.store.update(session_id, _append)

        metrics_collector.record_message("outbound" if from_agent else "inbound")
        logger.debug(f"Message relayed for {session_id} from {message.sender}")

        self._persist(
            "append_transcript",
            "append_transcript",
            session_id,
            transcript_line(message.name, text, now),
        )
        self._log_event(session_id, "message", f"{message.name}: {text}")
        return message

    async def admin_send(
        self,
        session_id: str,
        text: Optional[str],
        agent_name: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> ChatMessage:
        """Agent message typed in the dashboard."""
        return await self.send_message(
            session_id,
            text,
            sender=MessageSender.AGENT.value,
            name=agent_name,
            now=now,
        )

    async def transfer_session(
        self,
        session_id: str,
        target_role: Optional[str],
        transferred_by: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> str:
        """
        Put a session back in the waiting queue of another role.

        The claim deadline keeps running unless
        ``transfer_resets_claim_timeout`` is enabled.

        Returns:
            Human-readable summary of the transfer

        Raises:
            SessionNotFoundError, InvalidRoleError, SessionTimedOutError
        """
        if not session_id:
            raise InvalidInputError("Session ID is required")

        now = now or utcnow()
        target = (target_role or "").strip().lower()

        def _transfer(session: LiveSession) -> str:
            if not self.settings.is_valid_role(target):
                raise InvalidRoleError(target_role)
            if session.is_timed_out:
                raise SessionTimedOutError(session.id)

            old_role = session.requested_role
            session.requested_role = target
            session.agent_name = None
            session.assigned_role = None
            session.claimed_at = None
            session.status = SessionStatus.WAITING
            session.touch(now)

            if self.settings.transfer_resets_claim_timeout:
                session.restart_claim_window(self.settings.claim_timeout_seconds, now)

            self.broadcaster.notify_admins({
                "type": "session_transferred",
                "sessionId": session.id,
                "userName": session.visitor_name,
                "fromRole": old_role,
                "toRole": target,
                "transferredBy": transferred_by,
                "timestamp": now.isoformat(),
            })
            return old_role

        old_role = await self.store.update(session_id, _transfer)

        track_transition("transferred")
        logger.info(f"Session {session_id} transferred {old_role} -> {target} by {transferred_by}")

        self._log_event(
            session_id,
            "transfer",
            f"Transferred from {old_role} to {target} by {transferred_by or 'unknown'}",
        )
        return f"Session transferred from {old_role} to {target}"

    async def _remove(self, session_id: str) -> LiveSession:
        if not session_id:
            raise InvalidInputError("Session ID is required")

        session = await self.store.delete(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _finish(self, session: LiveSession, visitor_event: Dict[str, Any], admin_event: Dict[str, Any]) -> None:
        """Deliver the terminal events and close the session's streams."""
        self.broadcaster.push(session.id, visitor_event)
        self.broadcaster.drop_key(session.id)
        self.broadcaster.notify_admins(admin_event)

    async def close_session(self, session_id: str, now: Optional[datetime] = None) -> LiveSession:
        """
        Close a session and forget it.

        Returns:
            The removed session

        Raises:
            SessionNotFoundError
        """
        now = now or utcnow()
        session = await self._remove(session_id)

        self._finish(
            session,
            {"type": "session_closed", "timestamp": now.isoformat()},
            {
                "type": "session_ended",
                "sessionId": session.id,
                "userName": session.visitor_name,
                "endedBy": session.agent_name,
                "reason": "Session closed",
                "timestamp": now.isoformat(),
            },
        )

        track_transition("closed")
        logger.info(f"Session {session_id} closed")

        self._persist("record_end", "record_end", session_id, "closed")
        self._log_event(session_id, "close", "Session closed by agent")
        return session

    async def end_session(
        self,
        session_id: str,
        agent_name: Optional[str] = "Admin",
        agent_role: Optional[str] = None,
        reason: Optional[str] = "Chat ended by agent",
        now: Optional[datetime] = None
    ) -> LiveSession:
        """
        Agent ends the chat; the visitor is told who ended it and why.

        Returns:
            The removed session

        Raises:
            SessionNotFoundError
        """
        now = now or utcnow()
        agent_name = agent_name or "Admin"
        agent_role = agent_role or self.settings.default_role
        reason = reason or "Chat ended by agent"

        session = await self._remove(session_id)

        self._finish(
            session,
            {
                "type": "agent_ended",
                "message": f"👋 {agent_name} ({agent_role}) has ended the chat. Thank you for contacting us!",
                "reason": reason,
            },
            {
                "type": "session_ended",
                "sessionId": session.id,
                "userName": session.visitor_name,
                "endedBy": agent_name,
                "reason": reason,
                "timestamp": now.isoformat(),
            },
        )

        track_transition("ended")
        logger.info(f"👋 Session {session_id} ended by {agent_name}: {reason}")

        self._persist("record_end", "record_end", session_id, reason)
        self._log_event(session_id, "end", f"Ended by {agent_name} ({agent_role}): {reason}")
        return session

    async def rate_session(
        self,
        session_id: str,
        rating: Optional[str],
        rating_type: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Record visitor feedback. The session may already be gone from memory.

        Returns:
            The normalized ``rating`` and ``ratingType``
        """
        if not session_id:
            raise InvalidInputError("Session ID is required")

        rating = normalize_rating(rating)
        rating_type = normalize_rating(rating_type)

        self._persist("record_rating", "record_rating", session_id, rating, rating_type)
        logger.info(f"Rating for {session_id}: {rating} ({rating_type})")

        return {"rating": rating, "ratingType": rating_type}

    # ===========================
    # Queries
    # ===========================

    async def _require(self, session_id: str) -> LiveSession:
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def get_session(self, session_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Full session view with claim countdown fields."""
        now = now or utcnow()
        session = await self._require(session_id)

        data = session.to_dict()
        data.update({
            "timeRemaining": session.time_remaining_seconds(now),
            "isUrgent": session.is_urgent(self.settings.warning_threshold_seconds, now),
            "minutesWaiting": int(session.age_seconds(now) // 60),
        })
        return data

    async def list_sessions(
        self,
        role: Optional[str] = None,
        include_timed_out: bool = False,
        waiting_only: bool = False,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Dashboard listing.

        Args:
            role: Only sessions requesting this role (``all`` or None for every role)
            include_timed_out: Keep timed-out sessions in the result
            waiting_only: Only sessions without an agent
        """
        now = now or utcnow()
        role = (role or "").strip().lower()

        sessions = await self.store.list()
        if role and role != "all":
            sessions = [s for s in sessions if s.requested_role == role]
        if not include_timed_out:
            sessions = [s for s in sessions if not s.is_timed_out]
        if waiting_only:
            sessions = [s for s in sessions if s.agent_name is None]

        sessions.sort(key=lambda s: s.created_at)
        threshold = self.settings.warning_threshold_seconds
        return [s.to_summary(threshold, now) for s in sessions]

    async def get_history(self, session_id: str) -> List[Dict[str, Any]]:
        session = await self._require(session_id)
        return [m.to_dict() for m in session.messages]

    async def get_messages(self, session_id: str) -> Dict[str, Any]:
        session = await self._require(session_id)
        return {
            "success": True,
            "sessionId": session.id,
            "userName": session.visitor_name,
            "agentName": session.agent_name,
            "status": session.status.value,
            "messages": [m.to_dict() for m in session.messages],
            "createdAt": isoformat(session.created_at),
            "lastActivity": isoformat(session.last_activity),
        }

    async def get_agent_name(self, session_id: str) -> Optional[str]:
        """
        Agent of a session: from memory first, then from the recorder
        (the session may have been closed already).
        """
        session = await self.store.get(session_id)
        if session is not None and session.agent_name:
            return session.agent_name

        if self.recorder is None:
            return None

        try:
            return await self.recorder.get_agent_name(session_id)
        except Exception as e:
            logger.error(f"Agent lookup failed for {session_id}: {e}", exc_info=True)
            return None

    async def admin_sessions(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Compact list of every session with waiting time in milliseconds."""
        now = now or utcnow()
        return [
            {
                "id": s.id,
                "userName": s.visitor_name,
                "userEmail": s.visitor_email,
                "requestedRole": s.requested_role,
                "status": s.status.value,
                "waitingTime": int(s.age_seconds(now) * 1000),
            }
            for s in await self.store.list()
        ]

    async def get_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        sessions = await self.store.list()

        by_role = {role: 0 for role in self.settings.valid_roles}
        for s in sessions:
            if s.requested_role in by_role:
                by_role[s.requested_role] += 1

        waiting = sum(1 for s in sessions if s.is_waiting)
        claimed = [s for s in sessions if s.is_claimed]
        timed_out = sum(1 for s in sessions if s.is_timed_out)

        waits = [
            (s.claimed_at - s.created_at).total_seconds()
            for s in claimed
            if s.claimed_at is not None
        ]
        average_wait = int(math.floor(sum(waits) / len(waits))) if waits else 0

        return {
            "total": len(sessions),
            "byRole": by_role,
            "byStatus": {
                "waiting": waiting,
                "claimed": len(claimed),
                "timed_out": timed_out,
            },
            "waiting": waiting,
            "active": len(claimed),
            "adminConnections": self.broadcaster.admin_count(),
            "averageWaitTime": average_wait,
            "timestamp": now.isoformat(),
        }

    async def health(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        stats = await self.store.get_stats()
        by_status = stats["by_status"]
        update_live_sessions(by_status)

        return {
            "status": "ok",
            "totalSessions": stats["total_sessions"],
            "waitingSessions": by_status[SessionStatus.WAITING.value],
            "claimedSessions": by_status[SessionStatus.CLAIMED.value],
            "timedOutSessions": by_status[SessionStatus.TIMED_OUT.value],
            "adminClients": self.broadcaster.admin_count(),
            "activeClientStreams": self.broadcaster.visitor_stream_count(),
            "uptime": metrics_collector.uptime,
            "sessionTimeout": int(self.settings.claim_timeout_seconds),
            "outbox": self.outbox.stats.to_dict(),
            "timestamp": now.isoformat(),
        }

    async def connection_test(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "serverTime": utcnow().isoformat(),
            "sessions": await self.store.count(),
            "adminConnections": self.broadcaster.admin_count(),
            "activeClientStreams": len(self.broadcaster.visitor_keys()),
            "environment": self.settings.environment,
            "message": "Live Chat Server is running correctly",
        }

    async def session_status_map(self) -> Dict[str, str]:
        """Status per session id, reported in visitor heartbeats."""
        return await self.store.status_map()

    # ===========================
    # Streams
    # ===========================

    async def open_visitor_stream(self, session_id: str, now: Optional[datetime] = None) -> EventStream:
        """
        Subscribe a visitor tab.

        The ``connected`` event is built and the stream registered in one
        store mutation, so no event can slip in between.
        """
        if not session_id:
            raise InvalidInputError("Session ID required")

        now = now or utcnow()

        def _open(session: LiveSession) -> EventStream:
            return self.broadcaster.open(session.id, {
                "type": "connected",
                "sessionId": session.id,
                "timeRemaining": session.time_remaining_seconds(now),
                "status": session.status.value,
            })

        try:
            return await self.store.update(session_id, _open)
        except SessionNotFoundError:
            return self.broadcaster.open(session_id, {"type": "connected", "sessionId": session_id})

    async def open_admin_stream(self, now: Optional[datetime] = None) -> EventStream:
        """
        Subscribe an admin dashboard.

        ``admin_connected`` is sent at once; ``initial_data`` follows after
        a short delay.
        """
        now = now or utcnow()
        client_id = uuid.uuid4().hex[:8]

        stream = self.broadcaster.open(
            ADMIN_KEY,
            {
                "type": "admin_connected",
                "message": "SSE Connected Successfully",
                "clientId": client_id,
                "timestamp": now.isoformat(),
            },
            client_id=client_id,
        )

        self._spawn(self._send_initial_data(stream))
        return stream

    async def initial_data(self, client_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Dashboard snapshot sent to a newly connected admin."""
        now = now or utcnow()
        sessions = await self.store.list()

        waiting = [s for s in sessions if s.is_waiting]
        timed_out = [s for s in sessions if s.is_timed_out]

        return {
            "type": "initial_data",
            "waitingSessions": len(waiting),
            "timedOutSessions": len(timed_out),
            "totalSessions": len(sessions),
            "sessions": [
                {**s.to_dict(), "timeRemaining": s.time_remaining_seconds(now)}
                for s in waiting
            ],
            "clientId": client_id,
        }

    async def _send_initial_data(self, stream: EventStream) -> None:
        await asyncio.sleep(self.settings.initial_data_delay_seconds)
        if stream.closed:
            return

        stream.push(await self.initial_data(stream.client_id))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def heartbeat(self) -> int:
        """Keep-alive for every open stream."""
        return self.broadcaster.heartbeat(await self.session_status_map())

    async def shutdown(self) -> None:
        """Cancel pending background sends and close every stream."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        for key in self.broadcaster.visitor_keys():
            self.broadcaster.drop_key(key)
        self.broadcaster.drop_key(ADMIN_KEY)

        logger.info("✓ SessionBroker shut down")


__all__ = [
    "SessionBroker",
    "normalize_rating",
    "transcript_line",
    "VALID_RATINGS",
    "NOT_RATED",
]
