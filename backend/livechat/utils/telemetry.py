"""
Telemetry and monitoring utilities.
"""
import logging
import time
from typing import Dict

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

# Metrics definitions
request_count = Counter(
    'livechat_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

request_duration = Histogram(
    'livechat_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

sessions_created = Counter(
    'livechat_sessions_created_total',
    'Live chat sessions requested by visitors',
    ['requested_role']
)

session_claims = Counter(
    'livechat_session_claims_total',
    'Claim attempts by outcome',
    ['outcome']
)

session_transitions = Counter(
    'livechat_session_transitions_total',
    'Session lifecycle transitions',
    ['transition']
)

chat_messages = Counter(
    'livechat_messages_total',
    'Relayed chat messages',
    ['direction']
)

live_sessions = Gauge(
    'livechat_sessions_active',
    'Sessions held in memory',
    ['status']
)

stream_connections = Gauge(
    'livechat_stream_connections_active',
    'Open server-push streams',
    ['kind']
)

pruned_subscribers = Counter(
    'livechat_pruned_subscribers_total',
    'Streams removed after a failed or refused write',
    ['kind']
)

outbox_jobs = Counter(
    'livechat_outbox_jobs_total',
    'Side-effect jobs by outcome',
    ['job', 'outcome']
)

push_notifications = Counter(
    'livechat_push_notifications_total',
    'Admin push notifications by outcome',
    ['outcome']
)


def setup_telemetry(app: FastAPI) -> None:
    """
    Setup telemetry and monitoring for the application.

    Args:
        app: FastAPI application instance
    """
    logger.info("Setting up telemetry...")

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.middleware("http")
    async def track_requests(request, call_next):
        """Track HTTP request metrics."""
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time

        # Route template keeps label cardinality bounded
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        request_count.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()

        request_duration.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(duration)

        return response

    logger.info("Telemetry setup complete")


def track_session_created(requested_role: str) -> None:
    sessions_created.labels(requested_role=requested_role).inc()


def track_claim(outcome: str) -> None:
    session_claims.labels(outcome=outcome).inc()


def track_transition(transition: str, count: int = 1) -> None:
    if count:
        session_transitions.labels(transition=transition).inc(count)


def track_message(direction: str) -> None:
    chat_messages.labels(direction=direction).inc()


def update_live_sessions(by_status: Dict[str, int]) -> None:
    for status, count in by_status.items():
        live_sessions.labels(status=status).set(count)


def update_stream_connections(kind: str, count: int) -> None:
    stream_connections.labels(kind=kind).set(count)


def track_pruned_subscriber(kind: str) -> None:
    pruned_subscribers.labels(kind=kind).inc()


def track_outbox_job(job: str, outcome: str) -> None:
    outbox_jobs.labels(job=job, outcome=outcome).inc()


def track_push_notification(outcome: str) -> None:
    push_notifications.labels(outcome=outcome).inc()


class MetricsCollector:
    """Collects and manages application metrics."""

    def __init__(self):
        self.start_time = time.time()
        self.message_count = 0
        self.error_count = 0

    def record_message(self, direction: str):
        """Record a relayed chat message."""
        self.message_count += 1
        track_message(direction)

    def record_error(self):
        """Record an error."""
        self.error_count += 1

    @property
    def uptime(self) -> float:
        return time.time() - self.start_time

    def get_stats(self) -> dict:
        """Get current statistics."""
        uptime = self.uptime

        return {
            "uptime_seconds": uptime,
            "messages_relayed": self.message_count,
            "errors": self.error_count,
            "messages_per_minute": (self.message_count / uptime) * 60 if uptime > 0 else 0
        }


# Global metrics collector
metrics_collector = MetricsCollector()
