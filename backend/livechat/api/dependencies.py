"""
Request dependencies.
Services are built once in the application lifespan and kept on app.state.
"""
from typing import Optional

from fastapi import HTTPException, Request

from ..services import ConversationRecorder, SessionBroker


def get_broker(request: Request) -> SessionBroker:
    """Get the session broker from app state."""
    broker = getattr(request.app.state, "broker", None)
    if broker is None:
        raise HTTPException(status_code=503, detail="Session broker not initialized")
    return broker


def get_recorder(request: Request) -> Optional[ConversationRecorder]:
    return getattr(request.app.state, "recorder", None)

