"""Notification dispatcher webhook client with exponential backoff retry logic"""

import httpx
import asyncio
import logging
from typing import Dict, Any, Optional
from lendit_gateway.config import Settings
from lendit_gateway.domain.exceptions import NotificationError
from lendit_gateway.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


class NotificationClient:
    """Posts domain events to the dispatcher that fans them out to email/SMS/push"""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.webhook_url = settings.notification_webhook_url
        self.timeout = settings.http_timeout_seconds
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.transport = transport

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one event with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on HTTP error statuses and network failures
        - Tracks latency histogram and failure counter

        Raises:
            NotificationError: every attempt failed
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logging.error(
                            f"Notification delivery failed after {attempt} attempts: {e}",
                            extra={"event": payload.get("event"), "agreement_id": payload.get("agreement_id")},
                        )
                        raise NotificationError(f"Could not deliver {payload.get('event')} event") from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
