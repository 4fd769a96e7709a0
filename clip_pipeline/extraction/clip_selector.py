"""
Clip Selection
==============
Ranks discovered clips and picks the ones worth downloading.

Ranking:
    - Clips already downloaded (matched by external id or URL) are dropped
    - If any clip has a known view count, clips are ranked by views, highest
      first, and clips without a view count are dropped
    - Otherwise clips are ranked by creation time, newest first
    - Ties break on external id so the order is deterministic
"""
from typing import Iterable, List

from loguru import logger

from clip_pipeline.models import Clip


def _not_downloaded(clips: Iterable[Clip], already_downloaded: Iterable[str]) -> List[Clip]:
    seen = set(already_downloaded)
    fresh = []
    for clip in clips:
        if clip.clip_id in seen or clip.url in seen:
            continue
        seen.add(clip.clip_id)
        fresh.append(clip)
    return fresh


def select_top(clips: Iterable[Clip], already_downloaded: Iterable[str], limit: int) -> List[Clip]:
    """
    Pick at most ``limit`` clips to download.

    Args:
        clips: Discovered clips
        already_downloaded: External ids and/or source URLs already stored
        limit: Maximum number of clips to return

    Returns:
        Selected clips in download order
    """
    if limit <= 0:
        return []

    candidates = _not_downloaded(clips, already_downloaded)
    if not candidates:
        return []

    known = [c for c in candidates if c.view_count is not None]
    if known:
        dropped = len(candidates) - len(known)
        if dropped:
            logger.debug(f"Dropping {dropped} clip(s) without a view count")
        ranked = sorted(known, key=lambda c: (-c.view_count, c.clip_id))
    else:
        ranked = sorted(candidates, key=lambda c: c.clip_id)
        ranked.sort(key=lambda c: c.created_at, reverse=True)

    return ranked[:limit]
