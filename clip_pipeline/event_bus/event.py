"""
Event Model
===========
Envelope for every message published on the clip pipeline bus.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4


@dataclass
class Event:
    """
    A published event.

    Attributes:
        topic: Event topic (e.g., "clip.downloaded")
        payload: Event-specific data
        id: Unique identifier
        timestamp: When the event was created
        source: Component that published the event
        correlation_id: Links the events of one workflow run
        metadata: Replay info, etc.
    """
    topic: str
    payload: Dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "unknown"
    correlation_id: str = field(default_factory=lambda: str(uuid4()))
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        return f"Event({self.topic}, id={self.id[:8]}, run={self.correlation_id[:8]})"
