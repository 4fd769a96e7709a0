"""
Event Bus Module
================
In-process pub/sub for clip lifecycle and workflow events.

Usage:
    from clip_pipeline.event_bus import EventBus, Event, Topics

    bus = EventBus()
    await bus.publish(Topics.CLIP_DOWNLOADED, {"clip_id": "123"})
"""

from .event import Event
from .topics import Topics
from .bus import EventBus, EventHandler

__all__ = ['Event', 'Topics', 'EventBus', 'EventHandler']
