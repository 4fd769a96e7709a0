"""
Base Worker
===========
Event-driven worker attached to the pipeline's EventBus.

A worker declares the topic patterns it listens to and implements
``handle_event``. Subscriptions are made on construction, so a worker
reacts to events even before ``start`` announces it on the bus.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from clip_pipeline.event_bus import Event, EventBus, Topics

logger = logging.getLogger(__name__)


@dataclass
class WorkerStats:
    processed: int = 0
    failed: int = 0
    last_topic: Optional[str] = None
    last_duration: float = 0.0
    by_topic: Dict[str, int] = field(default_factory=dict)

    def record(self, topic: str, duration: float, ok: bool) -> None:
        if ok:
            self.processed += 1
        else:
            self.failed += 1
        self.last_topic = topic
        self.last_duration = duration
        self.by_topic[topic] = self.by_topic.get(topic, 0) + 1


class BaseWorker(ABC):
    """
    Example:
        class ReadyLogger(BaseWorker):
            def get_subscriptions(self) -> List[str]:
                return [Topics.CLIP_READY]

            async def handle_event(self, event: Event) -> None:
                logger.info(event.payload["title"])
    """

    def __init__(self, event_bus: EventBus, worker_id: Optional[str] = None):
        self.event_bus = event_bus
        self.worker_id = worker_id or f"{self.__class__.__name__}-{uuid4().hex[:8]}"
        self.is_running = False
        self.stats = WorkerStats()
        self._started_at: Optional[datetime] = None
        self._subscribed: List[str] = []

        for pattern in self.get_subscriptions():
            self.event_bus.subscribe(pattern, self._on_event)
            self._subscribed.append(pattern)

        logger.info(f"🔧 {self.worker_id} listening on {', '.join(self._subscribed)}")

    @abstractmethod
    def get_subscriptions(self) -> List[str]:
        """Topic patterns this worker listens to."""

    @abstractmethod
    async def handle_event(self, event: Event) -> None:
        """Handle one event. Errors propagate to the bus dead-letter list."""

    async def _on_event(self, event: Event) -> None:
        started = time.monotonic()
        try:
            await self.handle_event(event)
        except Exception as e:
            self.stats.record(event.topic, time.monotonic() - started, ok=False)
            logger.error(f"[{self.worker_id}] ❌ {event.topic} run={event.correlation_id[:8]}: {e}")
            raise
        duration = time.monotonic() - started
        self.stats.record(event.topic, duration, ok=True)
        logger.debug(f"[{self.worker_id}] ✅ {event.topic} in {duration:.2f}s")

    def unsubscribe_all(self) -> None:
        for pattern in self._subscribed:
            self.event_bus.unsubscribe(pattern, self._on_event)
        self._subscribed = []

    async def emit(
        self,
        topic: str,
        payload: Dict[str, Any],
        correlation_id: Optional[str] = None
    ) -> str:
        return await self.event_bus.publish(
            topic, payload, correlation_id=correlation_id, source=self.worker_id
        )

    async def start(self) -> None:
        self.is_running = True
        self._started_at = datetime.now(timezone.utc)
        await self.emit(Topics.WORKER_STARTED, {
            "worker_id": self.worker_id,
            "worker_type": self.__class__.__name__,
            "subscriptions": list(self._subscribed),
        })
        logger.info(f"🚀 {self.worker_id} started")

    async def stop(self) -> None:
        self.is_running = False
        self.unsubscribe_all()
        await self.emit(Topics.WORKER_STOPPED, {
            "worker_id": self.worker_id,
            "events_processed": self.stats.processed,
            "events_failed": self.stats.failed,
            "uptime_seconds": self.get_uptime_seconds(),
        })
        logger.info(f"🛑 {self.worker_id} stopped")

    def get_uptime_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        return (datetime.now(timezone.utc) - self._started_at).total_seconds()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "worker_type": self.__class__.__name__,
            "is_running": self.is_running,
            "events_processed": self.stats.processed,
            "events_failed": self.stats.failed,
            "events_by_topic": dict(self.stats.by_topic),
            "uptime_seconds": self.get_uptime_seconds(),
        }
