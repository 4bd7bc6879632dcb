"""
Admin push notifications.

When a visitor asks for a live agent, every registered admin device gets a
data-only "incoming call" message through the push gateway. Delivery runs
from the outbox; each token is retried on its own and a shared circuit
breaker stops hammering a gateway that is down.

Version: 1.0.0
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import aiohttp
from aiobreaker import CircuitBreaker, CircuitBreakerError
from aiohttp import ClientError, ClientSession, ClientTimeout
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Settings
from ..utils.telemetry import track_push_notification
from .recorder import ConversationRecorder

logger = logging.getLogger(__name__)


class PushDeliveryError(Exception):
    """Gateway answered with a retryable error status."""
    pass


class PushRejectedError(Exception):
    """Gateway refused the message (bad token or payload); not retried."""
    pass


class PushNotifier:
    """
    Posts incoming-session alerts to the push gateway.

    The gateway receives ``{"token": ..., "data": {...}}`` per device.
    """

    def __init__(
        self,
        gateway_url: str,
        recorder: ConversationRecorder,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        circuit_fail_max: int = 5,
        circuit_timeout: int = 60,
        retry_wait_max: float = 10.0
    ):
        """
        Initialize the notifier.

        Args:
            gateway_url: Endpoint accepting one message per POST
            recorder: Source of registered admin tokens
            timeout: Per-request timeout in seconds
            retry_attempts: Attempts per token
            circuit_fail_max: Consecutive failures before the breaker opens
            circuit_timeout: Seconds before an open breaker lets a call through
            retry_wait_max: Upper bound of the exponential backoff
        """
        self.gateway_url = gateway_url
        self.recorder = recorder
        self.timeout = timeout
        self.session: Optional[ClientSession] = None

        self.breaker = CircuitBreaker(
            fail_max=circuit_fail_max,
            timeout_duration=timedelta(seconds=circuit_timeout),
            exclude=[PushRejectedError],
            name="push_gateway",
        )

        self._post_with_retry = retry(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_exponential(multiplier=1, min=0, max=retry_wait_max),
            retry=retry_if_exception_type((ClientError, PushDeliveryError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )(self._post)

    async def initialize(self) -> None:
        """Create the HTTP session with connection pooling."""
        if self.session is not None:
            return

        connector = aiohttp.TCPConnector(limit=10, limit_per_host=5, ttl_dns_cache=300)
        self.session = ClientSession(
            timeout=ClientTimeout(total=self.timeout),
            connector=connector,
            headers={
                "User-Agent": "LiveChatBroker/1.0",
                "Accept": "application/json",
            },
        )
        logger.info(f"✓ Push notifier initialized (gateway: {self.gateway_url})")

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None
            logger.info("Push notifier session closed")

    @staticmethod
    def build_payload(session_id: str, visitor_name: str, requested_role: str) -> Dict[str, Any]:
        return {
            "title": "📞 Incoming Live Chat",
            "body": f"{visitor_name} wants {requested_role} support",
            "session_id": session_id,
            "requestedRole": requested_role,
            "type": "incoming_call",
        }

    async def notify_new_session(
        self,
        session_id: str,
        visitor_name: str,
        requested_role: str
    ) -> int:
        """
        Alert every registered admin device.

        A failing token is logged and skipped; the fan-out continues.

        Returns:
            Number of devices the gateway accepted
        """
        tokens = await self.recorder.list_push_tokens()
        if not tokens:
            logger.info("No admin push tokens registered")
            return 0

        await self.initialize()
        data = self.build_payload(session_id, visitor_name, requested_role)
        logger.info(f"Sending push to {len(tokens)} admins for session {session_id}")

        delivered = 0
        for token in tokens:
            if await self.send_to_token(token, data):
                delivered += 1

        return delivered

    async def send_to_token(self, token: str, data: Dict[str, Any]) -> bool:
        """
        Deliver one message through the circuit breaker.

        Returns:
            True if the gateway accepted it
        """
        try:
            await self.breaker.call_async(self._post_with_retry, token, data)
        except CircuitBreakerError as e:
            track_push_notification("circuit_open")
            logger.warning(f"Push gateway circuit open, skipping token: {e}")
            return False
        except (ClientError, PushDeliveryError, PushRejectedError) as e:
            track_push_notification("failed")
            logger.error(f"✗ Push failed for token {token[:8]}...: {e}")
            return False

        track_push_notification("sent")
        return True

    async def _post(self, token: str, data: Dict[str, Any]) -> None:
        async with self.session.post(
            self.gateway_url,
            json={"token": token, "data": data},
        ) as response:
            if response.status >= 500 or response.status == 429:
                raise PushDeliveryError(f"Push gateway error: {response.status}")
            if response.status >= 400:
                raise PushRejectedError(f"Push gateway rejected message: {response.status}")


def create_push_notifier(
    settings: Settings,
    recorder: Optional[ConversationRecorder]
) -> Optional[PushNotifier]:
    """
    Build the notifier, or None when no gateway (or no token source) is configured.
    """
    if not settings.push_enabled or recorder is None:
        logger.info("Push notifications disabled")
        return None

    return PushNotifier(
        gateway_url=settings.push_gateway_url,
        recorder=recorder,
        timeout=settings.push_timeout_seconds,
        retry_attempts=settings.push_retry_attempts,
        circuit_fail_max=settings.push_circuit_fail_max,
        circuit_timeout=settings.push_circuit_timeout_seconds,
    )


__all__ = [
    "PushNotifier",
    "PushDeliveryError",
    "PushRejectedError",
    "create_push_notifier",
]
