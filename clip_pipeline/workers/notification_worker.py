"""
Notification Worker
====================
Forwards key pipeline events to the configured notification sinks.

Subscribes to:
    - clip.downloaded            → clip_downloaded
    - clip.analysis.completed    → clip_analyzed
    - workflow.completed         → workflow_completed
    - workflow.failed            → error
    - clip.analysis.failed       → error
    - clip.download.failed       → error
"""

import asyncio
import functools
import logging
from typing import Dict, List, Optional, Set

from clip_pipeline.event_bus import Event, EventBus, Topics
from clip_pipeline.interfaces import EventSink
from clip_pipeline.workers.base import BaseWorker

logger = logging.getLogger(__name__)

EVENT_NAMES: Dict[str, str] = {
    Topics.CLIP_DOWNLOADED: "clip_downloaded",
    Topics.CLIP_ANALYSIS_COMPLETED: "clip_analyzed",
    Topics.WORKFLOW_COMPLETED: "workflow_completed",
    Topics.WORKFLOW_FAILED: "error",
    Topics.CLIP_ANALYSIS_FAILED: "error",
    Topics.CLIP_DOWNLOAD_FAILED: "error",
}


class NotificationWorker(BaseWorker):
    """
    Delivery runs in background tasks so a slow sink never delays the run
    that published the event. ``stop`` waits for deliveries still in flight.

    Usage:
        worker = NotificationWorker(bus, [WebhookEventSink(url, limiter)])
        await worker.start()
    """

    def __init__(
        self,
        event_bus: EventBus,
        sinks: List[EventSink],
        worker_id: Optional[str] = None,
    ):
        self.sinks = list(sinks)
        self._notification_count = 0
        self._deliveries: Set[asyncio.Task] = set()
        super().__init__(event_bus, worker_id)

    def get_subscriptions(self) -> List[str]:
        return list(EVENT_NAMES.keys())

    async def handle_event(self, event: Event) -> None:
        event_name = EVENT_NAMES.get(event.topic)
        if event_name is None:
            return

        payload = {"topic": event.topic, "correlation_id": event.correlation_id, **event.payload}
        for sink in self.sinks:
            task = asyncio.create_task(sink.notify(event_name, payload))
            task.add_done_callback(functools.partial(self._delivery_done, sink))
            self._deliveries.add(task)

        self._notification_count += 1
        logger.debug(f"[{self.worker_id}] Queued {event_name} for {len(self.sinks)} sink(s)")

    def _delivery_done(self, sink: EventSink, task: asyncio.Task) -> None:
        self._deliveries.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[{self.worker_id}] Sink {sink.__class__.__name__} failed: {error}")

    @property
    def pending_deliveries(self) -> int:
        return len(self._deliveries)

    async def drain(self) -> None:
        """Wait for every queued delivery to finish."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def stop(self) -> None:
        await super().stop()
        await self.drain()


async def start_notification_worker(event_bus: EventBus, sinks: List[EventSink]) -> NotificationWorker:
    """Create and start a notification worker."""
    worker = NotificationWorker(event_bus, sinks)
    await worker.start()
    return worker
