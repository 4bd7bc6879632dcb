"""
Session management package.
Live session model, registry and broker errors.

Version: 1.0.0
"""
from .models import (
    ChatMessage,
    LiveSession,
    MessageSender,
    SessionStatus,
    isoformat,
    utcnow,
)
from .errors import (
    InvalidInputError,
    InvalidRoleError,
    LiveChatError,
    SessionAlreadyClaimedError,
    SessionNotFoundError,
    SessionTimedOutError,
)
from .session_store import SessionStore
from .in_memory_session_store import InMemorySessionStore


def create_session_store(store_type: str = "in_memory", **kwargs) -> SessionStore:
    """
    Factory function to create the session store.

    Only the in-memory store exists: live sessions are process-local.
    """
    if store_type == "in_memory":
        return InMemorySessionStore(**kwargs)

    raise ValueError(f"Unknown store type: {store_type}")


__all__ = [
    # Model
    'ChatMessage',
    'LiveSession',
    'MessageSender',
    'SessionStatus',
    'isoformat',
    'utcnow',

    # Errors
    'LiveChatError',
    'SessionNotFoundError',
    'SessionAlreadyClaimedError',
    'SessionTimedOutError',
    'InvalidRoleError',
    'InvalidInputError',

    # Store
    'SessionStore',
    'InMemorySessionStore',
    'create_session_store',
]
