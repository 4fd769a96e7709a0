"""
Clip Processor
==============
Per-clip analyze → quality gate → persist.

Used by the orchestrator inside a run, by the retry operation, by the
pending-clip sweep and by the analysis worker. A clip that fails analysis is
marked FAILED with its error message; the caller moves on to the next clip.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Set

from loguru import logger

from clip_pipeline.analysis import AnalysisService
from clip_pipeline.event_bus import EventBus, Topics
from clip_pipeline.exceptions import StageTransientError
from clip_pipeline.models import AnalysisResult, ClipStatus, DownloadedClip, utc_now
from clip_pipeline.quality import GateResult, QualityThresholds, evaluate
from clip_pipeline.storage import ClipRepository


@dataclass
class ProcessOutcome:
    """Terminal result for one clip."""
    clip: DownloadedClip
    status: ClipStatus
    analysis: Optional[AnalysisResult] = None
    gate: Optional[GateResult] = None
    error: Optional[str] = None


class ClipProcessor:
    """
    Usage:
        processor = ClipProcessor(repo, analysis_service, QualityThresholds(), bus)
        outcome = await processor.process(downloaded_clip, run_id=run.run_id)
    """

    def __init__(
        self,
        repository: ClipRepository,
        analysis_service: AnalysisService,
        thresholds: Optional[QualityThresholds] = None,
        event_bus: Optional[EventBus] = None,
        pending_min_age_seconds: float = 120.0,
    ):
        self.repository = repository
        self.analysis_service = analysis_service
        self.thresholds = thresholds or QualityThresholds()
        self.event_bus = event_bus
        self.pending_min_age_seconds = pending_min_age_seconds
        self._in_flight: Set[str] = set()

    def is_in_flight(self, clip_id: str) -> bool:
        return clip_id in self._in_flight

    async def _emit(self, topic: str, payload: dict, run_id: Optional[str]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(topic, payload, correlation_id=run_id)

    async def process(self, clip: DownloadedClip, run_id: Optional[str] = None) -> ProcessOutcome:
        """Analyze and gate one clip, persisting every status change."""
        self._in_flight.add(clip.clip_id)
        try:
            return await self._process(clip, run_id or clip.run_id)
        finally:
            self._in_flight.discard(clip.clip_id)

    async def _process(self, clip: DownloadedClip, run_id: Optional[str]) -> ProcessOutcome:
        clip.processing_status = ClipStatus.ANALYZING.value
        self.repository.save(clip)
        await self._emit(Topics.CLIP_ANALYSIS_STARTED, {"clip_id": clip.clip_id}, run_id)

        try:
            analysis = await self.analysis_service.analyze(clip)
            gate = evaluate(analysis, clip, self.thresholds)
        except StageTransientError as e:
            logger.error(f"❌ Analysis failed for {clip.clip_id}: {e.message}")
            return await self._fail(clip, e.message, run_id)
        except Exception as e:
            logger.exception(f"❌ Unexpected error analyzing {clip.clip_id}")
            return await self._fail(clip, f"{e.__class__.__name__}: {e}"[:500], run_id)

        clip.analysis = analysis
        status = ClipStatus.READY_FOR_UPLOAD if gate.passed else ClipStatus.SKIPPED
        self._finish(clip, status)

        payload = {
            "clip_id": clip.clip_id,
            "title": analysis.optimized_title,
            "viral_score": analysis.viral_score,
            "estimated_views": analysis.estimated_views,
            "status": status.value,
            "gate": gate.gate_name,
            "reason": gate.message,
        }
        await self._emit(Topics.CLIP_ANALYSIS_COMPLETED, payload, run_id)
        await self._emit(Topics.CLIP_READY if gate.passed else Topics.CLIP_SKIPPED, payload, run_id)

        if gate.passed:
            logger.success(f"🎬 Clip ready: {analysis.optimized_title} (score {analysis.viral_score:.1f})")
        else:
            logger.info(f"⏭️  Clip skipped: {clip.clip_id} ({gate.message})")

        return ProcessOutcome(clip=clip, status=status, analysis=analysis, gate=gate)

    async def _fail(self, clip: DownloadedClip, message: str, run_id: Optional[str]) -> ProcessOutcome:
        self._finish(clip, ClipStatus.FAILED, error=message)
        await self._emit(
            Topics.CLIP_ANALYSIS_FAILED,
            {"clip_id": clip.clip_id, "title": clip.title, "error": message},
            run_id,
        )
        return ProcessOutcome(clip=clip, status=ClipStatus.FAILED, error=message)

    def _finish(self, clip: DownloadedClip, status: ClipStatus, error: Optional[str] = None) -> None:
        clip.processing_status = status.value
        clip.processed = True
        clip.processed_at = utc_now()
        clip.error_message = error
        self.repository.save(clip)

    async def process_many(self, clips: Iterable[DownloadedClip], run_id: Optional[str] = None) -> List[ProcessOutcome]:
        """Process clips one at a time."""
        return [await self.process(clip, run_id=run_id) for clip in clips]

    async def retry_failed(self) -> int:
        """
        Requeue every FAILED clip and analyze it again.

        Returns:
            Number of clips retried
        """
        failed = self.repository.list_by_status(ClipStatus.FAILED.value)
        if not failed:
            logger.info("No failed clips to retry")
            return 0

        logger.info(f"🔄 Retrying {len(failed)} failed clip(s)")
        for clip in failed:
            clip.processed = False
            clip.processing_status = ClipStatus.RETRY.value
            clip.error_message = None
            self.repository.save(clip)
            await self._emit(Topics.CLIP_RETRY, {"clip_id": clip.clip_id}, clip.run_id)

        await self.process_many(failed)
        return len(failed)

    async def process_pending(self, now: Optional[datetime] = None) -> int:
        """
        Analyze unprocessed clips older than the minimum age.

        Clips already being processed are left alone.

        Returns:
            Number of clips processed
        """
        cutoff = (now or utc_now()) - timedelta(seconds=self.pending_min_age_seconds)
        pending = [
            c for c in self.repository.list_unprocessed(cutoff)
            if not self.is_in_flight(c.clip_id)
        ]
        if not pending:
            return 0

        logger.info(f"🧹 Processing {len(pending)} pending clip(s)")
        await self.process_many(pending)
        return len(pending)
