"""
Health check API routes.
"""
import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from ...database import check_db_connection
from ...services import SessionBroker
from ..dependencies import get_broker

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check(broker: SessionBroker = Depends(get_broker)) -> Dict[str, Any]:
    """
    Liveness and session counts.

    Returns:
        Totals by status, stream counts, uptime and claim timeout
    """
    return await broker.health()


@router.get("/ready")
async def readiness_check(
    request: Request,
    broker: SessionBroker = Depends(get_broker),
) -> Dict[str, Any]:
    """
    Readiness of the session store and, when enabled, the database.
    """
    app_settings = request.app.state.settings
    services = {}
    overall_status = "healthy"

    store_health = await broker.store.health_check()
    services["session_store"] = "healthy" if store_health.get("healthy") else "unhealthy"
    if not store_health.get("healthy"):
        overall_status = "unhealthy"

    if app_settings.persistence_enabled:
        if await asyncio.to_thread(check_db_connection):
            services["database"] = "healthy"
        else:
            # Persistence is best-effort; live chat keeps working
            services["database"] = "unhealthy"
            overall_status = "degraded"

    services["outbox"] = "running" if broker.outbox.running else "stopped"

    return {
        "status": overall_status,
        "version": app_settings.app_version,
        "services": services,
    }
