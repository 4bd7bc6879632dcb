"""
Live session data model.
Pydantic models for sessions and chat messages held by the session store.

Version: 1.0.0
"""
import logging
import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SessionStatus(str, Enum):
    """Session lifecycle states kept in memory."""
    WAITING = "waiting"
    CLAIMED = "claimed"
    TIMED_OUT = "timed_out"
    ENDED = "ended"


class MessageSender(str, Enum):
    """Who wrote a message."""
    USER = "user"
    AGENT = "agent"


class ChatMessage(BaseModel):
    """
    One entry of a session transcript.

    Serialized with the wire key ``from`` for the sender.
    Unknown keys (e.g. from an AI pre-chat history) are preserved.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    sender: str = Field(default=MessageSender.USER.value, alias="from")
    text: str = Field(default="")
    name: Optional[str] = Field(default=None)
    timestamp: str = Field(default_factory=lambda: utcnow().isoformat())

    @field_validator('timestamp', mode='before')
    @classmethod
    def coerce_timestamp(cls, v: Any) -> str:
        if isinstance(v, datetime):
            return v.isoformat()
        if v is None:
            return utcnow().isoformat()
        return str(v)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class LiveSession(BaseModel):
    """
    A visitor's live chat engagement.

    Invariant: ``agent_name`` is set if and only if ``status`` is claimed.
    A timed-out session never goes back to waiting.
    """

    model_config = ConfigDict(use_enum_values=False)

    id: str = Field(..., min_length=1, max_length=255)
    visitor_name: str = Field(default="Guest")
    visitor_email: str = Field(default="")
    requested_role: str = Field(default="support")

    agent_name: Optional[str] = None
    assigned_role: Optional[str] = None
    status: SessionStatus = SessionStatus.WAITING

    messages: List[ChatMessage] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    claimed_at: Optional[datetime] = None
    timeout_at: datetime = Field(default_factory=utcnow)

    warning_sent: bool = False

    @field_validator('requested_role')
    @classmethod
    def normalize_role(cls, v: str) -> str:
        return v.strip().lower()

    # ===========================
    # Derived values
    # ===========================

    @property
    def is_waiting(self) -> bool:
        return self.status == SessionStatus.WAITING

    @property
    def is_claimed(self) -> bool:
        return self.status == SessionStatus.CLAIMED

    @property
    def is_timed_out(self) -> bool:
        return self.status == SessionStatus.TIMED_OUT

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds since the session was created."""
        return ((now or utcnow()) - self.created_at).total_seconds()

    def claim_time_remaining(self, now: Optional[datetime] = None) -> float:
        """Seconds left before the claim deadline (never negative)."""
        return max(0.0, (self.timeout_at - (now or utcnow())).total_seconds())

    def time_remaining_seconds(self, now: Optional[datetime] = None) -> int:
        """Remaining claim time rounded up to whole seconds, as shown to clients."""
        return int(math.ceil(self.claim_time_remaining(now)))

    def is_urgent(self, warning_threshold: float, now: Optional[datetime] = None) -> bool:
        return self.claim_time_remaining(now) <= warning_threshold

    @property
    def last_message(self) -> Optional[ChatMessage]:
        return self.messages[-1] if self.messages else None

    # ===========================
    # Mutators (called under the store lock)
    # ===========================

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_activity = now or utcnow()

    def append_message(self, message: ChatMessage, now: Optional[datetime] = None) -> None:
        self.messages.append(message)
        self.touch(now)

    def restart_claim_window(self, claim_timeout: float, now: Optional[datetime] = None) -> None:
        self.timeout_at = (now or utcnow()) + timedelta(seconds=claim_timeout)
        self.warning_sent = False

    # ===========================
    # Serialization
    # ===========================

    def to_dict(self) -> Dict[str, Any]:
        """Full wire representation (camelCase keys)."""
        return {
            "id": self.id,
            "userName": self.visitor_name,
            "userEmail": self.visitor_email,
            "requestedRole": self.requested_role,
            "agentName": self.agent_name,
            "assignedRole": self.assigned_role,
            "status": self.status.value,
            "messages": [m.to_dict() for m in self.messages],
            "createdAt": isoformat(self.created_at),
            "lastActivity": isoformat(self.last_activity),
            "claimedAt": isoformat(self.claimed_at),
            "timeoutAt": isoformat(self.timeout_at),
            "warningSent": self.warning_sent,
        }

    def to_summary(
        self,
        warning_threshold: float,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Dashboard list entry."""
        now = now or utcnow()
        last = self.last_message
        return {
            "id": self.id,
            "userName": self.visitor_name,
            "agentName": self.agent_name,
            "requestedRole": self.requested_role,
            "assignedRole": self.assigned_role,
            "messagesCount": len(self.messages),
            "lastMessage": last.to_dict() if last else None,
            "createdAt": isoformat(self.created_at),
            "lastActivity": isoformat(self.last_activity),
            "status": self.status.value,
            "timeRemaining": self.time_remaining_seconds(now),
            "isUrgent": self.is_urgent(warning_threshold, now),
            "timeoutAt": isoformat(self.timeout_at),
        }


__all__ = [
    "utcnow",
    "isoformat",
    "SessionStatus",
    "MessageSender",
    "ChatMessage",
    "LiveSession",
]
