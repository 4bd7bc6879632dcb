"""
Errors raised by session broker operations.
Each carries a machine-stable code and the HTTP status it maps to.
"""
from typing import Any, Dict, Optional


class LiveChatError(Exception):
    """Base class for recoverable, request-level broker errors."""

    code = "livechat_error"
    status_code = 400

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
        }


class SessionNotFoundError(LiveChatError):
    """Unknown session id."""

    code = "not_found"
    status_code = 404

    def __init__(self, session_id: Optional[str]):
        super().__init__("Session not found", session_id=session_id)


class SessionAlreadyClaimedError(LiveChatError):
    """The session already has an agent."""

    code = "already_claimed"

    def __init__(self, session_id: str, agent_name: Optional[str] = None):
        super().__init__("Session already claimed by another agent", session_id=session_id)
        self.agent_name = agent_name


class SessionTimedOutError(LiveChatError):
    """The session passed its claim deadline and can no longer be acted on."""

    code = "already_timed_out"

    def __init__(self, session_id: str):
        super().__init__(
            "Session has already timed out. Please ask the user to start a new session.",
            session_id=session_id
        )


class InvalidRoleError(LiveChatError):
    """Transfer target outside the configured role set."""

    code = "invalid_role"

    def __init__(self, role: Optional[str]):
        super().__init__("Invalid target role")
        self.role = role


class InvalidInputError(LiveChatError):
    """Missing or empty required field."""

    code = "invalid_input"


__all__ = [
    "LiveChatError",
    "SessionNotFoundError",
    "SessionAlreadyClaimedError",
    "SessionTimedOutError",
    "InvalidRoleError",
    "InvalidInputError",
]
