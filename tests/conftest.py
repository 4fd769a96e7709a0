"""
Shared fixtures and in-memory collaborators for the clip pipeline tests.
"""
import asyncio
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from clip_pipeline.analysis import AnalysisService
from clip_pipeline.content_download import ClipDownloader
from clip_pipeline.event_bus import EventBus
from clip_pipeline.exceptions import DownloadFailedError
from clip_pipeline.interfaces import ClipSource, ContentAnalyzer, EventSink, ProviderResponse, VideoFetcher
from clip_pipeline.models import ChannelRef, Clip, DownloadedClip, TimeWindow, utc_now
from clip_pipeline.quality import QualityThresholds
from clip_pipeline.rate_limit import RateLimiterRegistry
from clip_pipeline.storage import ClipRepository, RunRepository, in_memory_database
from clip_pipeline.workflow import ClipProcessor, PipelineOrchestrator

FAST_LIMITS = {
    "twitch-api": (100, 1.0),
    "clip-download": (100, 1.0),
    "analysis-primary": (100, 1.0),
    "analysis-enriched": (100, 1.0),
    "webhook": (100, 1.0),
}

GOOD_ANALYSIS = {
    "title": "Insane clutch in the final circle",
    "description": "A one-versus-four clutch that nobody expected.",
    "tags": ["clutch", "fps", "highlight", "gaming"],
    "category": "EPIC",
    "viral_score": 8.0,
    "sentiment": "POSITIVE",
    "estimated_views": 5000,
    "best_upload_time": "19:00",
}


def make_clip(
    clip_id: str,
    views: Optional[int] = 500,
    duration: float = 30.0,
    title: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Clip:
    return Clip(
        clip_id=clip_id,
        title=title or f"Clip {clip_id}",
        url=f"https://clips.twitch.tv/{clip_id}",
        creator_name="alice",
        broadcaster_name="streamer",
        game_name="Valorant",
        view_count=views,
        duration=duration,
        created_at=created_at or utc_now(),
    )


def make_downloaded(
    clip_id: str,
    file_path: str = "",
    download_date: Optional[datetime] = None,
    **kwargs,
) -> DownloadedClip:
    clip = DownloadedClip(
        clip_id=clip_id,
        title=kwargs.pop("title", f"Clip {clip_id}"),
        original_url=f"https://clips.twitch.tv/{clip_id}",
        file_path=file_path or f"/tmp/{clip_id}.mp4",
        creator_name="alice",
        game_name="Valorant",
        view_count=kwargs.pop("view_count", 500),
        duration=kwargs.pop("duration", 30.0),
        **kwargs,
    )
    if download_date is not None:
        clip.download_date = download_date
    return clip


class FakeClipSource(ClipSource):
    """Channels are resolved from a dict of name -> clips."""

    def __init__(self, channels: Dict[str, List[Clip]], delay: float = 0.0):
        self.channels = channels
        self.delay = delay
        self.resolve_times: Dict[str, float] = {}

    async def resolve_channel(self, name: str) -> Optional[ChannelRef]:
        self.resolve_times[name] = asyncio.get_running_loop().time()
        if self.delay:
            await asyncio.sleep(self.delay)
        if name not in self.channels:
            return None
        return ChannelRef(channel_id=f"id-{name}", name=name)

    async def fetch(self, channel: ChannelRef, window: TimeWindow) -> List[Clip]:
        return list(self.channels[channel.name])


class FakeFetcher(VideoFetcher):
    """Writes a small file, or fails for the configured URLs after leaving a partial file."""

    def __init__(
        self,
        fail_urls: Iterable[str] = (),
        empty_urls: Iterable[str] = (),
        delay: float = 0.0,
    ):
        self.fail_urls = set(fail_urls)
        self.empty_urls = set(empty_urls)
        self.delay = delay
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch_to_file(self, url: str, dest_path: Path, timeout: float) -> bool:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if url in self.fail_urls:
                Path(dest_path).write_bytes(b"part")
                raise DownloadFailedError("yt-dlp exited with code 1", url=url)
            if url in self.empty_urls:
                Path(dest_path).write_bytes(b"")
                return True
            Path(dest_path).write_bytes(b"\x00video-bytes")
            return True
        finally:
            self.active -= 1


class FakeAnalyzer(ContentAnalyzer):
    """Returns canned responses; fails for titles listed in ``fail_titles``."""

    def __init__(
        self,
        response: Optional[ProviderResponse] = None,
        enriched: Optional[ProviderResponse] = None,
        fail_titles: Iterable[str] = (),
        enrich_error: Optional[Exception] = None,
    ):
        self.response = response or ProviderResponse(structured=dict(GOOD_ANALYSIS))
        self.enriched = enriched
        self.fail_titles = set(fail_titles)
        self.enrich_error = enrich_error
        self.calls: List[str] = []
        self.enriched_calls: List[str] = []

    async def analyze(self, title: str, description: str, creator: str, game: str) -> ProviderResponse:
        self.calls.append(title)
        if title in self.fail_titles:
            raise RuntimeError("provider unavailable")
        return self.response

    async def analyze_enriched(self, title: str, description: str, creator: str, game: str):
        self.enriched_calls.append(title)
        if self.enrich_error is not None:
            raise self.enrich_error
        return self.enriched


class RecordingSink(EventSink):
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.received: List[tuple] = []

    async def notify(self, event_name: str, payload: dict) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("sink down")
        self.received.append((event_name, payload))


@pytest.fixture
def db():
    database = in_memory_database()
    yield database
    database.dispose()


@pytest.fixture
def clip_repo(db):
    return ClipRepository(db)


@pytest.fixture
def run_repo(db):
    return RunRepository(db)


@pytest.fixture
def limiter():
    return RateLimiterRegistry(FAST_LIMITS)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def downloader(clip_repo, fetcher, limiter, bus, tmp_path):
    return ClipDownloader(clip_repo, fetcher, limiter, tmp_path / "downloads", timeout=5.0, event_bus=bus)


@pytest.fixture
def analysis_service(analyzer, limiter):
    return AnalysisService(analyzer, limiter, enrichment_enabled=False)


@pytest.fixture
def processor(clip_repo, analysis_service, bus):
    return ClipProcessor(clip_repo, analysis_service, QualityThresholds(), bus, pending_min_age_seconds=120)


def build_orchestrator(source, downloader, processor, clip_repo, run_repo, bus, **kwargs):
    kwargs.setdefault("launch_delay_seconds", 0.0)
    return PipelineOrchestrator(source, downloader, processor, clip_repo, run_repo, event_bus=bus, **kwargs)


def days_ago(days: int) -> datetime:
    return utc_now() - timedelta(days=days)
