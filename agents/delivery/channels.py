"""
BidRadar Notification Sinks
Delivery targets for alert notifications. The matching engine only emits
payloads; how they reach a user is up to the sink.
"""
import asyncio
from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable

import httpx
import structlog

from .models import NotificationPayload


@runtime_checkable
class NotificationSink(Protocol):
    """Anything that can accept a notification payload."""

    async def send(self, payload: NotificationPayload) -> None:
        ...


class LogNotificationSink:
    """Writes notifications to the structured log."""

    def __init__(self) -> None:
        self.logger = structlog.get_logger().bind(channel="log")

    async def send(self, payload: NotificationPayload) -> None:
        self.logger.info(
            "notification",
            title=payload.title,
            body=payload.body,
            alert_id=payload.alert_id,
            profile_id=payload.profile_id,
        )


class CallbackNotificationSink:
    """Hands each payload to an async callback (in-app push, websocket, tests)."""

    def __init__(self, callback: Callable[[NotificationPayload], Awaitable[None]]):
        self._callback = callback

    async def send(self, payload: NotificationPayload) -> None:
        await self._callback(payload)


class WebhookNotificationSink:
    """
    Webhook delivery channel.

    Posts ``{"title", "body", "alert_id", "profile_id", "priority"}`` as JSON.
    Retries server errors and rate limiting with backoff; client errors
    fail immediately.
    """

    MAX_RETRIES: int = 3
    RETRY_DELAYS: tuple[float, ...] = (1.0, 2.0, 4.0)

    def __init__(self, url: str, http_client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._http_client = http_client
        self.logger = structlog.get_logger().bind(channel="webhook")

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-loaded HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._http_client

    async def send(self, payload: NotificationPayload) -> None:
        last_error: Optional[str] = None
        for attempt in range(self.MAX_RETRIES):
            try:
                response = await self.http_client.post(self.url, json=payload.model_dump(mode="json"))

                if response.is_success:
                    self.logger.info("webhook_notification_sent", alert_id=payload.alert_id, attempts=attempt + 1)
                    return

                last_error = f"Webhook error (HTTP {response.status_code}): {response.text[:200]}"
                self.logger.warning(
                    "webhook_error",
                    status_code=response.status_code,
                    attempt=attempt + 1,
                )

                # Don't retry on client errors (4xx except 429)
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    break

            except httpx.HTTPError as e:
                last_error = f"Webhook request failed: {e}"
                self.logger.warning("webhook_request_failed", error=str(e), attempt=attempt + 1)

            if attempt < self.MAX_RETRIES - 1:
                await asyncio.sleep(self.RETRY_DELAYS[attempt])

        raise RuntimeError(last_error or "Webhook delivery failed")

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
