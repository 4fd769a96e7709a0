"""
Collaborator interfaces for the clip pipeline.

Concrete implementations live in ``sources``, ``content_download``,
``analysis`` and ``notifications``; tests supply in-memory fakes.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from clip_pipeline.models import ChannelRef, Clip, TimeWindow


class ClipSource(ABC):
    """Discovers clips for a channel on the source platform."""

    @abstractmethod
    async def resolve_channel(self, name: str) -> Optional[ChannelRef]:
        """Resolve a channel name; None when it does not exist."""
        pass

    @abstractmethod
    async def fetch(self, channel: ChannelRef, window: TimeWindow) -> List[Clip]:
        """All clips created inside ``window``, following every page."""
        pass


class VideoFetcher(ABC):
    """Downloads one clip to a local file."""

    @abstractmethod
    async def fetch_to_file(self, url: str, dest_path: Path, timeout: float) -> bool:
        """
        Fetch ``url`` into ``dest_path``.

        Returns True on success. Raises DownloadFailedError on timeout or
        tool failure.
        """
        pass


@dataclass
class ProviderResponse:
    """
    What an analysis provider returned.

    Exactly one of ``structured`` (a parsed mapping) or ``text`` is expected.
    """
    structured: Optional[Dict[str, Any]] = None
    text: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return isinstance(self.structured, dict) and bool(self.structured)


class ContentAnalyzer(ABC):
    """AI provider used by the analysis stage."""

    @abstractmethod
    async def analyze(
        self,
        title: str,
        description: str,
        creator: str,
        game: str,
    ) -> ProviderResponse:
        pass

    async def analyze_enriched(
        self,
        title: str,
        description: str,
        creator: str,
        game: str,
    ) -> Optional[ProviderResponse]:
        """Optional secondary analysis. Providers without one return None."""
        return None


class EventSink(ABC):
    """Receives pipeline notifications. Implementations never raise."""

    @abstractmethod
    async def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        pass
