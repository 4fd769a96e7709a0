"""
Clip Analysis Service
=====================
Analyze stage: one primary provider call, an optional enrichment call, and a
merge of the two.

Merge rules:
    - longer title and longer description win
    - tags: primary first, then secondary tags not already present
    - highest viral score and highest estimated views
    - category and sentiment from the primary
    - best upload time from the secondary
    - hashtags rebuilt from the first 5 merged tags
"""
from typing import List, Optional

from loguru import logger

from clip_pipeline.analysis.heuristics import (
    analysis_from_structured,
    analysis_from_text,
    fallback_analysis,
)
from clip_pipeline.exceptions import AnalysisError, RateLimitExceededError
from clip_pipeline.interfaces import ContentAnalyzer, ProviderResponse
from clip_pipeline.models import AnalysisResult, DownloadedClip, build_hashtags
from clip_pipeline.rate_limit import RateLimiterRegistry

PRIMARY_RATE_KEY = "analysis-primary"
ENRICHED_RATE_KEY = "analysis-enriched"


def _longer(first: str, second: str) -> str:
    return second if len(second or "") > len(first or "") else first


def _merge_tags(primary: List[str], secondary: List[str]) -> List[str]:
    merged: List[str] = []
    seen = set()
    for tag in list(primary) + list(secondary):
        key = tag.strip().lower()
        if key and key not in seen:
            seen.add(key)
            merged.append(tag.strip())
    return merged


def merge_analyses(primary: AnalysisResult, secondary: AnalysisResult) -> AnalysisResult:
    """Combine a primary and an enrichment analysis."""
    tags = _merge_tags(primary.tags, secondary.tags)
    return AnalysisResult(
        optimized_title=_longer(primary.optimized_title, secondary.optimized_title),
        optimized_description=_longer(primary.optimized_description, secondary.optimized_description),
        tags=tags,
        category=primary.category,
        viral_score=max(primary.viral_score, secondary.viral_score),
        sentiment=primary.sentiment,
        estimated_views=max(primary.estimated_views, secondary.estimated_views),
        best_upload_time=secondary.best_upload_time or primary.best_upload_time,
        social_hashtags=build_hashtags(tags),
        thumbnail_suggestion=primary.thumbnail_suggestion or secondary.thumbnail_suggestion,
        source="merged",
    )


def describe_clip(clip: DownloadedClip) -> str:
    parts = [f"Twitch clip by {clip.creator_name or 'unknown'}"]
    if clip.broadcaster_name:
        parts.append(f"from {clip.broadcaster_name}'s stream")
    if clip.game_name:
        parts.append(f"playing {clip.game_name}")
    return " ".join(parts) + f" ({clip.duration:.0f}s)."


class AnalysisService:
    """
    Runs provider analysis for downloaded clips.

    Usage:
        service = AnalysisService(OpenAIContentAnalyzer(...), limiter)
        result = await service.analyze(downloaded_clip)
    """

    def __init__(
        self,
        analyzer: ContentAnalyzer,
        rate_limiter: RateLimiterRegistry,
        enrichment_enabled: bool = True,
        enrichment_wait: float = 0.0,
        primary_key: str = PRIMARY_RATE_KEY,
        enriched_key: str = ENRICHED_RATE_KEY,
    ):
        self.analyzer = analyzer
        self.rate_limiter = rate_limiter
        self.enrichment_enabled = enrichment_enabled
        self.enrichment_wait = enrichment_wait
        self.primary_key = primary_key
        self.enriched_key = enriched_key

    def parse_response(self, response: Optional[ProviderResponse], clip: DownloadedClip) -> AnalysisResult:
        """Structured and free-text responses take different parsers."""
        description = describe_clip(clip)
        if response is not None and response.is_structured:
            return analysis_from_structured(response.structured, clip.title, description)
        if response is not None and response.text and response.text.strip():
            return analysis_from_text(
                response.text, clip.title, description, clip.creator_name, clip.game_name
            )
        logger.warning(f"⚠️ Empty provider response for {clip.clip_id}, using fallback analysis")
        return fallback_analysis(clip.title, description, clip.creator_name, clip.game_name)

    async def analyze(self, clip: DownloadedClip) -> AnalysisResult:
        """
        Analyze one clip.

        Raises:
            AnalysisError: the primary provider call failed or its response is unreadable
        """
        description = describe_clip(clip)

        async with self.rate_limiter.permit(self.primary_key):
            try:
                response = await self.analyzer.analyze(
                    clip.title, description, clip.creator_name, clip.game_name
                )
            except Exception as e:
                raise AnalysisError(f"Primary analysis failed: {e}", clip_id=clip.clip_id) from e

        try:
            primary = self.parse_response(response, clip)
        except Exception as e:
            raise AnalysisError(f"Unreadable analysis response: {e}", clip_id=clip.clip_id) from e
        logger.info(f"🧠 Primary analysis for {clip.clip_id}: score={primary.viral_score:.1f} ({primary.source})")

        if not self.enrichment_enabled:
            return primary

        secondary = await self._enrich(clip, description)
        if secondary is None:
            return primary

        merged = merge_analyses(primary, secondary)
        logger.info(f"🔀 Merged analysis for {clip.clip_id}: score={merged.viral_score:.1f}")
        return merged

    async def _enrich(self, clip: DownloadedClip, description: str) -> Optional[AnalysisResult]:
        """Best-effort secondary analysis. Any failure means no enrichment."""
        try:
            async with self.rate_limiter.permit(self.enriched_key, timeout=self.enrichment_wait):
                response = await self.analyzer.analyze_enriched(
                    clip.title, description, clip.creator_name, clip.game_name
                )
        except RateLimitExceededError:
            logger.info(f"🚦 Enrichment skipped for {clip.clip_id}: rate limited")
            return None
        except Exception as e:
            logger.warning(f"⚠️ Enrichment failed for {clip.clip_id}: {e}")
            return None

        if response is None or not (response.is_structured or (response.text or "").strip()):
            return None
        try:
            return self.parse_response(response, clip)
        except Exception as e:
            logger.warning(f"⚠️ Unreadable enrichment for {clip.clip_id}: {e}")
            return None
