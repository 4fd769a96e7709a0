"""
Event Bus
=========
In-process pub/sub connecting the orchestrator, the download stage and the
workers. Topics are dot-separated and subscriptions may use wildcards.

Handlers run inline, in subscription order, inside ``publish``. A handler
that raises does not stop the others: the failure is kept in the
dead-letter list together with the event.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from .event import Event
from .topics import Topics

logger = logging.getLogger(__name__)


EventHandler = Callable[[Event], Awaitable[None]]


@dataclass
class DeadLetter:
    event: Event
    handler_name: str
    error: str
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventBus:
    """
    Usage:
        bus = EventBus(source="clip-pipeline")
        bus.subscribe("clip.*", on_clip_event)
        event_id = await bus.publish(Topics.CLIP_DOWNLOADED, {"clip_id": "abc"})
    """

    def __init__(self, source: str = "clip-pipeline", max_log_size: int = 1000):
        self._source = source
        self._handlers: List[Tuple[str, EventHandler]] = []
        self._log: Deque[Event] = deque(maxlen=max_log_size)
        self._dead_letters: List[DeadLetter] = []
        self._published = Counter()
        self._closed = False

        logger.info(f"🚌 EventBus ready (source={source})")

    def set_source(self, source: str) -> None:
        self._source = source

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, topic_pattern: str, handler: EventHandler) -> str:
        """Register ``handler`` for ``topic_pattern`` ("clip.*", "*.failed", "*")."""
        self._handlers.append((topic_pattern, handler))
        logger.debug(f"📫 {_name(handler)} ← '{topic_pattern}'")
        return f"{topic_pattern}:{id(handler)}"

    def unsubscribe(self, topic_pattern: str, handler: EventHandler) -> bool:
        entry = (topic_pattern, handler)
        if entry not in self._handlers:
            return False
        self._handlers.remove(entry)
        logger.debug(f"📭 {_name(handler)} ✗ '{topic_pattern}'")
        return True

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(
        self,
        topic: str,
        payload: Dict[str, Any],
        correlation_id: Optional[str] = None,
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Publish an event and run every matching handler.

        Args:
            topic: Event topic (e.g., "clip.downloaded")
            payload: Event-specific data
            correlation_id: Run id linking the events of one workflow run
            source: Publisher name, defaults to the bus source
            metadata: Optional extra data

        Returns:
            Event ID
        """
        event = Event(
            topic=topic,
            payload=payload,
            source=source or self._source,
            metadata=metadata or {},
        )
        if correlation_id:
            event.correlation_id = correlation_id

        self._log.append(event)
        self._published[topic] += 1

        if self._closed:
            logger.warning(f"EventBus closed, {topic} logged but not dispatched")
            return event.id

        delivered = 0
        for pattern, handler in list(self._handlers):
            if not Topics.matches_pattern(pattern, topic):
                continue
            try:
                await handler(event)
                delivered += 1
            except Exception as e:
                logger.error(f"❌ {_name(handler)} failed on {topic}: {e}")
                self._dead_letters.append(DeadLetter(event, _name(handler), str(e)))

        logger.debug(f"📤 {topic} | run={event.correlation_id[:8]} → {delivered} handler(s)")
        return event.id

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def get_recent_events(
        self,
        topic_pattern: Optional[str] = None,
        limit: int = 50,
        correlation_id: Optional[str] = None
    ) -> List[Event]:
        """Newest first."""
        matched = []
        for event in reversed(self._log):
            if topic_pattern and not Topics.matches_pattern(topic_pattern, event.topic):
                continue
            if correlation_id and event.correlation_id != correlation_id:
                continue
            matched.append(event)
            if len(matched) >= limit:
                break
        return matched

    def get_dead_letter_queue(self, limit: int = 50) -> List[Tuple[Event, str]]:
        return [(d.event, d.error) for d in self._dead_letters[-limit:]]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "source": self._source,
            "is_running": not self._closed,
            "total_events_logged": len(self._log),
            "published_by_topic": dict(self._published),
            "dead_letter_count": len(self._dead_letters),
            "total_subscribers": len(self._handlers),
        }

    async def shutdown(self) -> None:
        await self.publish(Topics.SYSTEM_SHUTDOWN, {"reason": "graceful_shutdown"})
        self._closed = True
        self._handlers.clear()
        logger.info("🛑 EventBus closed")


def _name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", repr(handler))
