"""
Sweep Worker
============
Periodic pending-clip sweep.

Every ``interval`` seconds the worker analyzes clips that are still
unprocessed (downloaded outside a run, or stranded by a timed-out run) and
logs the pipeline's processing statistics.

Emits on tick:
    - clip.sweep.completed
"""

import asyncio
import logging
from typing import List, Optional

from clip_pipeline.event_bus import Event, EventBus, Topics
from clip_pipeline.workers.base import BaseWorker
from clip_pipeline.workflow import PipelineOrchestrator

logger = logging.getLogger(__name__)


class SweepWorker(BaseWorker):
    """
    Usage:
        worker = SweepWorker(bus, orchestrator, interval=300)
        await worker.start()   # sweep loop runs until stop()
    """

    def __init__(
        self,
        event_bus: EventBus,
        orchestrator: PipelineOrchestrator,
        interval: float = 300.0,
        worker_id: Optional[str] = None,
    ):
        self.orchestrator = orchestrator
        self.interval = interval
        self.sweep_count = 0
        self._sweep_task: Optional[asyncio.Task] = None
        super().__init__(event_bus, worker_id)

    def get_subscriptions(self) -> List[str]:
        return []

    async def handle_event(self, event: Event) -> None:
        return None

    async def start(self) -> None:
        await super().start()
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        await super().stop()

    async def _sweep_loop(self) -> None:
        logger.info(f"[{self.worker_id}] 🕐 Sweep loop started (every {self.interval}s)")
        while self.is_running:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"[{self.worker_id}] Sweep failed: {e}")

    async def sweep_once(self) -> int:
        """Process pending clips and log processing statistics."""
        processed = await self.orchestrator.process_pending_clips()

        status = self.orchestrator.get_status()
        logger.info(
            f"[{self.worker_id}] 📊 {status.total_clips_downloaded} downloaded, "
            f"{status.total_clips_processed} processed, {status.total_clips_pending} pending, "
            f"{status.total_clips_ready} ready, {status.total_clips_failed} failed"
        )
        self.sweep_count += 1
        await self.emit(Topics.CLIP_SWEEP_COMPLETED, {
            "processed": processed,
            "sweep_number": self.sweep_count,
            "status": status.to_dict(),
        })
        return processed
