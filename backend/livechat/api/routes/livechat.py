"""
Live chat API routes.
Visitor and agent operations plus the two event streams.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ...models.schemas import (
    AdminSendRequest,
    ClaimSessionRequest,
    CloseSessionRequest,
    EndSessionRequest,
    RatingRequest,
    RequestSessionRequest,
    RequestSessionResponse,
    SendMessageRequest,
    TransferSessionRequest,
)
from ...services import SessionBroker
from ...session import InvalidInputError
from ...streaming import sse_response
from ..dependencies import get_broker

logger = logging.getLogger(__name__)

router = APIRouter()


# ===========================
# Visitor operations
# ===========================

@router.post("/request", response_model=RequestSessionResponse)
async def request_session(
    request: RequestSessionRequest,
    broker: SessionBroker = Depends(get_broker)
):
    """
    Ask for a live agent.

    Returns:
        New session id and the claim timeout in seconds
    """
    return await broker.request_session(
        visitor_name=request.name,
        visitor_email=request.email,
        requested_role=request.requested_role,
        initial_messages=request.initial_messages,
    )


@router.post("/send")
async def send_message(
    request: SendMessageRequest,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    await broker.send_message(
        request.session_id,
        request.text,
        sender=request.sender,
        name=request.name,
    )
    return {"success": True}


@router.post("/rating")
async def rate_session(
    request: RatingRequest,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    await broker.rate_session(request.session_id, request.rating, request.rating_type)
    return {"success": True}


@router.get("/stream")
async def visitor_stream(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    broker: SessionBroker = Depends(get_broker)
) -> StreamingResponse:
    """Visitor event stream (text/event-stream)."""
    if not session_id:
        raise InvalidInputError("Session ID required")

    logger.info(f"🔗 Client connected to SSE: {session_id}")
    stream = await broker.open_visitor_stream(session_id)
    return sse_response(stream, broker.broadcaster)


# ===========================
# Agent operations
# ===========================

@router.get("/admin/stream")
async def admin_stream(broker: SessionBroker = Depends(get_broker)) -> StreamingResponse:
    """Admin dashboard event stream (text/event-stream)."""
    logger.info("🖥️ Admin dashboard connecting to SSE stream")
    stream = await broker.open_admin_stream()
    return sse_response(stream, broker.broadcaster)


@router.post("/claim")
async def claim_session(
    request: ClaimSessionRequest,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    await broker.claim_session(request.session_id, request.agent_name, request.agent_role)
    return {"success": True, "message": "Session claimed successfully"}


@router.post("/admin-send")
async def admin_send(
    request: AdminSendRequest,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    await broker.admin_send(request.session_id, request.text, request.agent_name)
    return {"success": True, "message": "Message sent to client"}


@router.post("/transfer")
async def transfer_session(
    request: TransferSessionRequest,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    message = await broker.transfer_session(
        request.session_id,
        request.target_role,
        request.transferred_by,
    )
    return {"success": True, "message": message}


@router.post("/close")
async def close_session(
    request: CloseSessionRequest,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    await broker.close_session(request.session_id)
    return {"success": True}


@router.post("/end-session")
async def end_session(
    request: EndSessionRequest,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    logger.info(f"👋 End session requested: {request.session_id} by {request.agent_name}")

    session = await broker.end_session(
        request.session_id,
        agent_name=request.agent_name,
        agent_role=request.agent_role,
        reason=request.reason,
    )
    return {
        "success": True,
        "message": "Session ended successfully",
        "notification": f"User {session.visitor_name} has been notified that the chat ended",
    }


# ===========================
# Queries
# ===========================

@router.get("/sessions")
async def list_sessions(
    role: Optional[str] = None,
    include_timed_out: bool = Query(default=False, alias="includeTimedOut"),
    waiting: bool = False,
    broker: SessionBroker = Depends(get_broker)
) -> List[Dict[str, Any]]:
    """
    Session summaries for the dashboard.

    Args:
        role: Requested role filter (``all`` for every role)
        include_timed_out: Include sessions past their claim deadline
        waiting: Only sessions without an agent
    """
    sessions = await broker.list_sessions(role, include_timed_out, waiting)
    logger.debug(f"Returning {len(sessions)} sessions for role: {role or 'all'}")
    return sessions


@router.get("/session/{session_id}")
async def get_session(
    session_id: str,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    return await broker.get_session(session_id)


@router.get("/session/{session_id}/agent")
async def get_session_agent(
    session_id: str,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    """Agent name, from memory or from the stored conversation."""
    agent_name = await broker.get_agent_name(session_id)

    if not agent_name:
        return {"success": False, "message": "Agent name not found for this session"}

    return {"success": True, "agentName": agent_name, "sessionId": session_id}


@router.get("/session/{session_id}/messages")
async def get_session_messages(
    session_id: str,
    broker: SessionBroker = Depends(get_broker)
) -> Dict[str, Any]:
    return await broker.get_messages(session_id)


@router.get("/history/{session_id}")
async def get_history(
    session_id: str,
    broker: SessionBroker = Depends(get_broker)
) -> List[Dict[str, Any]]:
    return await broker.get_history(session_id)


@router.get("/stats")
async def get_stats(broker: SessionBroker = Depends(get_broker)) -> Dict[str, Any]:
    return await broker.get_stats()


@router.get("/test-connection")
async def test_connection(broker: SessionBroker = Depends(get_broker)) -> Dict[str, Any]:
    return await broker.connection_test()
