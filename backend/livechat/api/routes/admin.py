"""
Admin API routes.
Compact session listing and push-token registration.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...models.schemas import PushRegisterRequest
from ...services import ConversationRecorder, SessionBroker
from ..dependencies import get_broker, get_recorder

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/admin/sessions")
async def admin_sessions(broker: SessionBroker = Depends(get_broker)) -> List[Dict[str, Any]]:
    return await broker.admin_sessions()


@router.post("/push/register")
async def register_push_token(
    request: PushRegisterRequest,
    broker: SessionBroker = Depends(get_broker),
    recorder: Optional[ConversationRecorder] = Depends(get_recorder)
):
    """
    Register an admin device for incoming-chat alerts.

    Stored through the outbox; the response does not wait for the write.
    """
    if recorder is None:
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "error": "Push registration requires persistence",
                "code": "unavailable",
            },
        )

    broker.outbox.submit(
        "register_push_token",
        recorder.register_push_token,
        request.token,
        request.platform,
    )
    logger.info(f"Push token registration queued ({request.platform})")
    return {"success": True}
