"""
Notification Sinks
==================
EventSink implementations. A sink never raises: delivery problems are
logged and dropped.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from clip_pipeline.interfaces import EventSink
from clip_pipeline.rate_limit import RateLimiterRegistry

WEBHOOK_RATE_KEY = "webhook"


class LoggingEventSink(EventSink):
    """Writes notifications to the log and keeps the last few in memory."""

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self.history: List[Dict[str, Any]] = []

    async def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        logger.info(f"🔔 {event_name}: {payload.get('clip_id') or payload.get('run_id') or ''}")
        self.history.append({"event": event_name, "payload": payload})
        if len(self.history) > self.history_size:
            self.history = self.history[-self.history_size:]


class WebhookEventSink(EventSink):
    """
    POSTs a flat JSON body to a webhook URL.

    Skipped without waiting when the ``webhook`` rate limit is exhausted.
    """

    def __init__(
        self,
        url: str,
        rate_limiter: RateLimiterRegistry,
        timeout: float = 10.0,
        rate_limit_key: str = WEBHOOK_RATE_KEY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.rate_limit_key = rate_limit_key
        self.transport = transport
        self.sent = 0
        self.dropped = 0

    def build_body(self, event_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "event": event_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        }

    async def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        if self.rate_limiter.is_rate_limited(self.rate_limit_key):
            self.dropped += 1
            logger.warning(f"🚦 Webhook rate limited, dropping '{event_name}'")
            return

        try:
            if not await self.rate_limiter.try_acquire(self.rate_limit_key, timeout=0):
                self.dropped += 1
                return
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=self.build_body(event_name, payload))
                response.raise_for_status()
            self.sent += 1
            logger.debug(f"📨 Webhook delivered: {event_name}")
        except Exception as e:
            self.dropped += 1
            logger.error(f"❌ Webhook delivery failed for '{event_name}': {e}")
