"""
Clip Downloader
===============
Download stage: fetches selected clips to local storage and records them.

A clip is persisted only after the fetch tool finished successfully and the
file on disk is non-empty. A failed fetch leaves nothing behind.
"""
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from clip_pipeline.event_bus import EventBus, Topics
from clip_pipeline.exceptions import DownloadFailedError, StageTransientError
from clip_pipeline.extraction import select_top
from clip_pipeline.interfaces import VideoFetcher
from clip_pipeline.models import Clip, DownloadedClip, DownloadSource
from clip_pipeline.rate_limit import RateLimiterRegistry
from clip_pipeline.storage import ClipRepository

DOWNLOAD_RATE_KEY = "clip-download"
FILENAME_TITLE_LIMIT = 50


def sanitize_filename(title: str) -> str:
    """Replace anything outside ``[a-zA-Z0-9._-]`` and cap the length."""
    return re.sub(r"[^a-zA-Z0-9._-]", "_", title)[:FILENAME_TITLE_LIMIT]


def clip_filename(clip: Clip) -> str:
    return f"{sanitize_filename(clip.title)}_{clip.clip_id}.mp4"


@dataclass
class DownloadBatch:
    """Outcome of downloading a ranked batch."""
    selected: int = 0
    downloaded: List[DownloadedClip] = field(default_factory=list)
    skipped: int = 0
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.downloaded)

    @property
    def attempted(self) -> int:
        return self.success_count + len(self.failed)

    @property
    def all_failed(self) -> bool:
        return bool(self.failed) and not self.downloaded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selected": self.selected,
            "downloaded": self.success_count,
            "skipped": self.skipped,
            "failed": dict(self.failed),
        }


class ClipDownloader:
    """
    Downloads clips through a VideoFetcher under the ``clip-download`` limit.

    Usage:
        downloader = ClipDownloader(repo, YtDlpFetcher(), limiter, Path("./downloads"))
        batch = await downloader.download_top(clips, limit=5, run_id=run.run_id)
    """

    def __init__(
        self,
        repository: ClipRepository,
        fetcher: VideoFetcher,
        rate_limiter: RateLimiterRegistry,
        download_dir: Path,
        timeout: float = 300.0,
        event_bus: Optional[EventBus] = None,
        rate_limit_key: str = DOWNLOAD_RATE_KEY,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.rate_limiter = rate_limiter
        self.download_dir = Path(download_dir)
        self.timeout = timeout
        self.event_bus = event_bus
        self.rate_limit_key = rate_limit_key

    async def download(
        self,
        clip: Clip,
        run_id: Optional[str] = None,
        source: DownloadSource = DownloadSource.MANUAL,
    ) -> Optional[DownloadedClip]:
        """
        Download one clip.

        Returns:
            The stored clip, or None when it was already downloaded

        Raises:
            DownloadFailedError: fetch timed out, failed or produced no file
        """
        if self.repository.exists(clip.clip_id):
            logger.info(f"⏭️  Clip already downloaded: {clip.clip_id}")
            return None

        self.download_dir.mkdir(parents=True, exist_ok=True)
        dest = self.download_dir / clip_filename(clip)

        logger.info(f"⬇️  Downloading clip {clip.clip_id}: {clip.title}")
        async with self.rate_limiter.permit(self.rate_limit_key):
            try:
                ok = await self.fetcher.fetch_to_file(clip.url, dest, self.timeout)
            except DownloadFailedError:
                self._remove_partial(dest)
                raise

        if not ok:
            self._remove_partial(dest)
            raise DownloadFailedError("Fetch tool reported failure", clip_id=clip.clip_id)

        if not dest.exists() or dest.stat().st_size == 0:
            self._remove_partial(dest)
            raise DownloadFailedError("Downloaded file is missing or empty", clip_id=clip.clip_id)

        stored = self.repository.add(DownloadedClip.from_clip(clip, str(dest), run_id))
        if stored is None:
            return None

        logger.success(f"✅ Downloaded {clip.clip_id} → {dest.name}")
        if self.event_bus is not None:
            await self.event_bus.publish(
                Topics.CLIP_DOWNLOADED,
                {
                    "clip_id": stored.clip_id,
                    "title": stored.title,
                    "file_path": stored.file_path,
                    "run_id": run_id,
                    "source": source.value,
                },
                correlation_id=run_id,
            )
        return stored

    async def download_top(
        self,
        clips: Iterable[Clip],
        limit: int,
        run_id: Optional[str] = None,
        source: DownloadSource = DownloadSource.AUTOMATED,
    ) -> DownloadBatch:
        """
        Rank ``clips``, then download the top ``limit`` one at a time.

        A failing clip is logged and recorded in the batch; the rest continue.
        """
        clips = list(clips)
        selected = select_top(clips, self.repository.existing_identifiers(clips), limit)
        batch = DownloadBatch(selected=len(selected))

        for clip in selected:
            try:
                stored = await self.download(clip, run_id=run_id, source=source)
            except StageTransientError as e:
                logger.error(f"❌ Download failed for {clip.clip_id}: {e.message}")
                batch.failed[clip.clip_id] = e.message
                if self.event_bus is not None:
                    await self.event_bus.publish(
                        Topics.CLIP_DOWNLOAD_FAILED,
                        {"clip_id": clip.clip_id, "error": e.message, "run_id": run_id},
                        correlation_id=run_id,
                    )
                continue

            if stored is None:
                batch.skipped += 1
            else:
                batch.downloaded.append(stored)

        logger.info(
            f"📦 Download batch: {batch.success_count}/{batch.selected} downloaded, "
            f"{batch.skipped} skipped, {len(batch.failed)} failed"
        )
        return batch

    @staticmethod
    def _remove_partial(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial download {path}: {e}")
