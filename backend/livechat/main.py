"""
FastAPI application entry point.
Version: 1.0.0 (Live session broker with SSE fan-out and timeout sweeper)
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import admin, health, livechat
from .config import Settings, settings
from .database import (
    check_db_connection,
    check_tables_exist,
    cleanup_db,
    get_database_info,
    get_session_factory,
    init_db,
)
from .services import (
    PeriodicTask,
    SessionBroker,
    SideEffectOutbox,
    SqlConversationRecorder,
    TimeoutSweeper,
    create_push_notifier,
)
from .session import LiveChatError, create_session_store
from .streaming import Broadcaster
from .utils.middleware import (
    ErrorHandlingMiddleware,
    RateLimitMiddleware,
    RequestIDMiddleware,
    TimingMiddleware,
)
from .utils.telemetry import metrics_collector, setup_telemetry

# Configure structured logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)

logger = logging.getLogger(__name__)


def _init_recorder(app_settings: Settings) -> Optional[SqlConversationRecorder]:
    """
    Set up conversation persistence.

    Persistence is best-effort: a database that cannot be reached at
    startup disables the recorder instead of failing the service.
    """
    if not app_settings.persistence_enabled:
        logger.info("Persistence disabled - conversations are not recorded")
        return None

    try:
        logger.info("Initializing database...")
        init_db(app_settings.database_url, app_settings.database_echo)

        if not check_db_connection():
            raise RuntimeError("Database connection check failed")
        if not check_tables_exist():
            raise RuntimeError("Required database tables are missing")

        logger.info("✓ Database initialized and verified")
        return SqlConversationRecorder(get_session_factory())

    except Exception as e:
        logger.error(f"✗ Database unavailable, running without persistence: {e}", exc_info=True)
        cleanup_db()
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the broker and its collaborators on startup; stop background
    work and close streams on shutdown.
    """
    app_settings: Settings = app.state.settings

    # === STARTUP ===
    logger.info("=" * 60)
    logger.info(f"Starting {app_settings.app_name} v{app_settings.app_version}")
    logger.info(f"Environment: {app_settings.environment}")
    logger.info(
        f"Timers: claim={app_settings.claim_timeout_seconds}s, "
        f"inactivity={app_settings.inactivity_timeout_seconds}s, "
        f"warning={app_settings.warning_threshold_seconds}s"
    )
    logger.info("=" * 60)

    recorder = _init_recorder(app_settings)
    push_notifier = create_push_notifier(app_settings, recorder)

    store = create_session_store("in_memory")
    broadcaster = Broadcaster(max_queue_size=app_settings.subscriber_queue_size)
    outbox = SideEffectOutbox(
        num_workers=app_settings.outbox_workers,
        max_size=app_settings.outbox_max_size,
    )
    await outbox.start()

    broker = SessionBroker(
        store,
        broadcaster,
        outbox,
        app_settings,
        recorder=recorder,
        push_notifier=push_notifier,
    )
    sweeper = TimeoutSweeper(store, broadcaster, app_settings, outbox=outbox, recorder=recorder)

    tasks = [
        PeriodicTask("session_sweep", app_settings.sweep_interval_seconds, sweeper.sweep),
        PeriodicTask("session_warning", app_settings.warning_interval_seconds, sweeper.warn),
        PeriodicTask("stream_heartbeat", app_settings.heartbeat_interval_seconds, broker.heartbeat),
    ]
    for task in tasks:
        task.start()

    app.state.recorder = recorder
    app.state.broker = broker
    app.state.sweeper = sweeper

    logger.info("=" * 60)
    logger.info("✓ Application started successfully")
    logger.info(f"Health check: http://{app_settings.api_host}:{app_settings.api_port}/health")
    logger.info("=" * 60)

    yield  # === APPLICATION RUNS HERE ===

    # === SHUTDOWN ===
    logger.info("Shutting down application...")

    await asyncio.gather(*(task.stop() for task in tasks))
    await broker.shutdown()
    await outbox.stop(timeout=app_settings.outbox_shutdown_timeout_seconds)

    if push_notifier is not None:
        await push_notifier.close()

    if recorder is not None:
        try:
            cleanup_db()
            logger.info("✓ Database cleanup complete")
        except Exception as e:
            logger.error(f"Error during database cleanup: {e}")

    logger.info("✓ Application shutdown complete")


def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(LiveChatError)
    async def livechat_error_handler(request: Request, exc: LiveChatError) -> JSONResponse:
        logger.info(f"{exc.code}: {exc.message} [{request.url.path}]")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": f"Invalid or missing fields: {', '.join(f for f in fields if f) or 'body'}",
                "code": "invalid_input",
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log uncaught exceptions with the request id and hide details outside debug."""
        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            f"Unhandled exception in request {request_id}: {exc}",
            exc_info=True,
            extra={
                "path": request.url.path,
                "method": request.method,
                "client": request.client.host if request.client else "unknown"
            }
        )
        metrics_collector.record_error()

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "message": str(exc) if request.app.state.settings.debug else "An unexpected error occurred",
                "request_id": request_id,
            },
        )


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        app_settings: Settings to use instead of the environment-loaded ones
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        description="Live chat broker: visitor/agent sessions with server-sent events",
        lifespan=lifespan,
        docs_url="/docs" if app_settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if app_settings.debug else None,
    )
    app.state.settings = app_settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time", "X-RateLimit-Limit"]
    )

    # Order matters - applied in reverse
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(TimingMiddleware)

    if app_settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            calls=app_settings.rate_limit_requests,
            period=app_settings.rate_limit_period
        )

    if app_settings.enable_telemetry:
        setup_telemetry(app)

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(livechat.router, prefix="/livechat", tags=["Live Chat"])
    app.include_router(admin.router, tags=["Admin"])

    _register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root(request: Request) -> Dict[str, Any]:
        """
        API information and status.
        """
        broker = getattr(request.app.state, "broker", None)
        session_stats = await broker.store.get_stats() if broker else {}

        return {
            "name": app_settings.app_name,
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "status": "operational",
            "endpoints": {
                "requestSession": "POST /livechat/request",
                "clientSSE": "GET /livechat/stream?sessionId=ID",
                "adminSSE": "GET /livechat/admin/stream",
                "sendMessage": "POST /livechat/send",
                "adminSend": "POST /livechat/admin-send",
                "claimSession": "POST /livechat/claim",
                "transfer": "POST /livechat/transfer",
                "endSession": "POST /livechat/end-session",
                "sessions": "GET /livechat/sessions",
                "stats": "GET /livechat/stats",
                "health": "GET /health",
                "metrics": "/metrics" if app_settings.enable_telemetry else "disabled",
            },
            "features": {
                "claimTimeoutSeconds": int(app_settings.claim_timeout_seconds),
                "warningThresholdSeconds": int(app_settings.warning_threshold_seconds),
                "sessionStatus": "waiting, claimed, timed_out",
                "persistence": app_settings.persistence_enabled,
                "push": app_settings.push_enabled,
            },
            "sessions": session_stats,
            "database": get_database_info(),
            "metrics": metrics_collector.get_stats(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # State is process-local: a single worker only
    uvicorn.run(
        "livechat.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level="debug" if settings.debug else "info",
        access_log=True,
        workers=1,
    )
