"""
Analysis Worker
===============
Analyzes clips that were downloaded outside a workflow run.

Subscribes to:
    - clip.downloaded (only MANUAL downloads; runs analyze their own clips)

In-run clips are analyzed by the orchestrator once the download batch
returns, so AUTOMATED downloads are ignored here.
"""

import logging
from typing import List, Optional

from clip_pipeline.event_bus import Event, EventBus, Topics
from clip_pipeline.models import DownloadSource
from clip_pipeline.storage import ClipRepository
from clip_pipeline.workers.base import BaseWorker
from clip_pipeline.workflow.clip_processor import ClipProcessor

logger = logging.getLogger(__name__)


class AnalysisWorker(BaseWorker):
    """
    Usage:
        worker = AnalysisWorker(bus, processor, clip_repository)
        await worker.start()
    """

    def __init__(
        self,
        event_bus: EventBus,
        processor: ClipProcessor,
        repository: ClipRepository,
        worker_id: Optional[str] = None,
    ):
        self.processor = processor
        self.repository = repository
        super().__init__(event_bus, worker_id)

    def get_subscriptions(self) -> List[str]:
        return [Topics.CLIP_DOWNLOADED]

    async def handle_event(self, event: Event) -> None:
        clip_id = event.payload.get("clip_id")
        if not clip_id:
            logger.warning(f"[{self.worker_id}] No clip_id in event payload")
            return

        if event.payload.get("source") == DownloadSource.AUTOMATED.value:
            logger.debug(f"[{self.worker_id}] {clip_id} belongs to a run, skipping")
            return

        if self.processor.is_in_flight(clip_id):
            logger.info(f"[{self.worker_id}] Analysis already in progress for {clip_id}, skipping")
            return

        clip = self.repository.get(clip_id)
        if clip is None:
            logger.warning(f"[{self.worker_id}] Clip {clip_id} not found")
            return
        if clip.processed:
            logger.info(f"[{self.worker_id}] Clip {clip_id} already processed, skipping")
            return

        outcome = await self.processor.process(clip)
        logger.info(f"[{self.worker_id}] {clip_id} → {outcome.status.value}")


async def start_analysis_worker(
    event_bus: EventBus,
    processor: ClipProcessor,
    repository: ClipRepository,
) -> AnalysisWorker:
    """Create and start an analysis worker."""
    worker = AnalysisWorker(event_bus, processor, repository)
    await worker.start()
    return worker
