"""
Clip Pipeline Orchestrator
==========================
Drives one workflow run per channel: discover → rank → download → analyze →
quality-gate → terminal state.

Runs for different channels execute concurrently and share the rate
limiter's permit pools. Within a run, stages are sequential and clips are
handled one at a time. A clip that fails is recorded and the run continues;
only channel resolution, a total download failure, the run timeout or an
unexpected error fail the run itself.

Usage:
    >>> orchestrator = PipelineOrchestrator(source, downloader, processor, clips, runs)
    >>> run = await orchestrator.run_channel("some_streamer", clip_limit=5, days_back=7)
    >>> runs = await orchestrator.run_channels(["a", "b", "c"])
    >>> await orchestrator.retry_failed_clips()
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from clip_pipeline.content_download import ClipDownloader
from clip_pipeline.event_bus import EventBus, Topics
from clip_pipeline.exceptions import RunPreconditionError, StorageError
from clip_pipeline.interfaces import ClipSource
from clip_pipeline.models import (
    AutomationStatus,
    ClipStatus,
    DownloadSource,
    RunState,
    TimeWindow,
    WorkflowRun,
    utc_now,
)
from clip_pipeline.storage import ClipRepository, RunRepository
from clip_pipeline.workflow.clip_processor import ClipProcessor
from clip_pipeline.workflow.state_machine import WorkflowStateMachine


class PipelineOrchestrator:
    """
    Clip Pipeline Orchestrator

    Coordinates the per-channel pipeline with:
    - State machine tracking per run
    - Per-clip failure isolation
    - Concurrent multi-channel fan-out
    - Retry, retention cleanup and pending-clip sweep
    - Event emission for notifications
    """

    def __init__(
        self,
        source: ClipSource,
        downloader: ClipDownloader,
        processor: ClipProcessor,
        clip_repository: ClipRepository,
        run_repository: RunRepository,
        event_bus: Optional[EventBus] = None,
        launch_delay_seconds: float = 2.0,
        run_timeout_seconds: Optional[float] = 1800.0,
        default_clip_limit: int = 5,
        default_days_back: int = 7,
        retention_days: int = 30,
        cleanup_remove_files: bool = True,
    ):
        self.source = source
        self.downloader = downloader
        self.processor = processor
        self.clip_repository = clip_repository
        self.run_repository = run_repository
        self.event_bus = event_bus or EventBus()
        self.launch_delay_seconds = launch_delay_seconds
        self.run_timeout_seconds = run_timeout_seconds
        self.default_clip_limit = default_clip_limit
        self.default_days_back = default_days_back
        self.retention_days = retention_days
        self.cleanup_remove_files = cleanup_remove_files

        self._active_runs: Dict[str, WorkflowRun] = {}
        self._started_at = utc_now()

        logger.info("🏭 Clip pipeline orchestrator initialized")

    # =========================================================================
    # RUNS
    # =========================================================================

    async def run_channel(
        self,
        channel_name: str,
        clip_limit: Optional[int] = None,
        days_back: Optional[int] = None,
    ) -> WorkflowRun:
        """
        Run the full pipeline for one channel.

        Never raises for pipeline failures: the returned run carries the
        terminal state and an error message instead.
        """
        if clip_limit is None:
            clip_limit = self.default_clip_limit
        if days_back is None:
            days_back = self.default_days_back

        run = WorkflowRun(channel_name=channel_name)
        machine = WorkflowStateMachine(run)
        self._active_runs[run.run_id] = run
        self._save_run(run)

        logger.info(f"🚀 Starting run {run.run_id[:8]} for channel '{channel_name}' "
                    f"(limit={clip_limit}, days_back={days_back})")
        await self.event_bus.publish(
            Topics.WORKFLOW_STARTED,
            {"run_id": run.run_id, "channel_name": channel_name},
            correlation_id=run.run_id,
        )

        try:
            if self.run_timeout_seconds:
                await asyncio.wait_for(
                    self._execute(run, machine, clip_limit, days_back),
                    timeout=self.run_timeout_seconds,
                )
            else:
                await self._execute(run, machine, clip_limit, days_back)
        except asyncio.TimeoutError:
            logger.error(f"⏱️  Run {run.run_id[:8]} timed out after {self.run_timeout_seconds}s")
            await self._fail(machine, f"Run timed out after {self.run_timeout_seconds}s")
        except RunPreconditionError as e:
            logger.error(f"❌ Run {run.run_id[:8]} cannot proceed: {e.message}")
            await self._fail(machine, e.message)
        except Exception as e:
            logger.exception(f"❌ Run {run.run_id[:8]} failed unexpectedly")
            await self._fail(machine, f"Unexpected error: {e}")
        finally:
            self._active_runs.pop(run.run_id, None)

        self._save_run(run)

        topic = Topics.WORKFLOW_FAILED if run.state == RunState.FAILED else Topics.WORKFLOW_COMPLETED
        await self.event_bus.publish(topic, run.to_dict(), correlation_id=run.run_id)

        if run.state == RunState.FAILED:
            logger.warning(f"⚠️ Run {run.run_id[:8]} for '{channel_name}' FAILED: {run.error_message}")
        else:
            logger.success(
                f"✓ Run {run.run_id[:8]} for '{channel_name}' {run.state.value}: "
                f"{run.clips_ready} ready, {run.clips_skipped} skipped, {run.clips_failed} failed"
            )
        return run

    async def _execute(
        self,
        run: WorkflowRun,
        machine: WorkflowStateMachine,
        clip_limit: int,
        days_back: int,
    ) -> None:
        await self._transition(machine, RunState.FETCHING)

        channel = await self.source.resolve_channel(run.channel_name)
        if channel is None:
            raise RunPreconditionError(f"Channel not found: {run.channel_name}")
        run.channel_id = channel.channel_id

        clips = await self.source.fetch(channel, TimeWindow.last_days(days_back))
        run.clips_discovered = len(clips)
        logger.info(f"🔎 Discovered {len(clips)} clip(s) for '{run.channel_name}'")

        if not clips:
            await self._transition(machine, RunState.SKIPPED)
            return

        await self._transition(machine, RunState.DOWNLOADING)
        batch = await self.downloader.download_top(
            clips, clip_limit, run_id=run.run_id, source=DownloadSource.AUTOMATED
        )
        run.clips_downloaded = batch.success_count
        self._save_run(run)

        if batch.all_failed:
            await self._fail(machine, f"All {len(batch.failed)} download(s) failed")
            return

        if not batch.downloaded:
            await self._transition(machine, RunState.SKIPPED)
            return

        # The batch result is the completion signal for analysis.
        await self._transition(machine, RunState.ANALYZING)
        for clip in batch.downloaded:
            outcome = await self.processor.process(clip, run_id=run.run_id)
            title = outcome.analysis.optimized_title if outcome.analysis else clip.title
            run.record_outcome(outcome.status, outcome.analysis, title)
            self._save_run(run)

        await self._transition(machine, RunState.READY if run.clips_ready > 0 else RunState.SKIPPED)

    async def run_channels(
        self,
        channel_names: List[str],
        clip_limit: Optional[int] = None,
        days_back: Optional[int] = None,
    ) -> List[WorkflowRun]:
        """
        Start one run per channel with a fixed delay between launches and
        wait for all of them.
        """
        logger.info(f"📺 Launching runs for {len(channel_names)} channel(s)")
        tasks = []
        for index, name in enumerate(channel_names):
            if index > 0 and self.launch_delay_seconds > 0:
                await asyncio.sleep(self.launch_delay_seconds)
            tasks.append(asyncio.create_task(self.run_channel(name, clip_limit, days_back)))

        runs = list(await asyncio.gather(*tasks))
        ready = sum(1 for r in runs if r.state == RunState.READY)
        failed = sum(1 for r in runs if r.state == RunState.FAILED)
        logger.success(f"✓ Multi-channel run finished: {ready} ready, {failed} failed, {len(runs)} total")
        return runs

    async def _transition(self, machine: WorkflowStateMachine, target: RunState) -> None:
        previous = machine.state
        machine.transition(target)
        await self.event_bus.publish(
            Topics.WORKFLOW_STATE_CHANGED,
            {"run_id": machine.run.run_id, "from": previous.value, "to": target.value},
            correlation_id=machine.run.run_id,
        )

    async def _fail(self, machine: WorkflowStateMachine, message: str) -> None:
        previous = machine.state
        if machine.fail(message):
            await self.event_bus.publish(
                Topics.WORKFLOW_STATE_CHANGED,
                {"run_id": machine.run.run_id, "from": previous.value, "to": RunState.FAILED.value},
                correlation_id=machine.run.run_id,
            )

    def _save_run(self, run: WorkflowRun) -> None:
        try:
            self.run_repository.save(run)
        except StorageError as e:
            logger.error(f"Could not persist run {run.run_id[:8]}: {e}")

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def retry_failed_clips(self) -> int:
        """Re-analyze every FAILED clip. No re-download."""
        return await self.processor.retry_failed()

    async def process_pending_clips(self) -> int:
        """Analyze clips downloaded outside a run that are still unprocessed."""
        return await self.processor.process_pending()

    async def cleanup_old_clips(self, days_to_keep: Optional[int] = None) -> int:
        """
        Delete clip records older than the retention window, whatever their
        status, together with their local files.

        Returns:
            Number of records deleted
        """
        days = self.retention_days if days_to_keep is None else days_to_keep
        if days < 0:
            raise ValueError(f"days_to_keep must be >= 0, got {days}")

        cutoff = utc_now() - timedelta(days=days)
        old_clips = self.clip_repository.list_downloaded_before(cutoff)
        if not old_clips:
            logger.info(f"🧹 No clips older than {days} day(s)")
            return 0

        if self.cleanup_remove_files:
            for clip in old_clips:
                try:
                    Path(clip.file_path).unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"Could not delete {clip.file_path}: {e}")

        deleted = self.clip_repository.delete_many(c.clip_id for c in old_clips)
        await self.event_bus.publish(
            Topics.CLIP_DELETED,
            {"count": deleted, "clip_ids": [c.clip_id for c in old_clips], "days_to_keep": days},
        )
        logger.info(f"🧹 Deleted {deleted} clip(s) older than {days} day(s)")
        return deleted

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_run(self, run_id: str) -> Optional[WorkflowRun]:
        return self._active_runs.get(run_id) or self.run_repository.get(run_id)

    def list_runs(self, limit: int = 50) -> List[WorkflowRun]:
        return self.run_repository.list_recent(limit)

    def get_status(self) -> AutomationStatus:
        by_status = self.clip_repository.count_by_status()
        return AutomationStatus(
            total_clips_downloaded=self.clip_repository.count(),
            total_clips_processed=self.clip_repository.count(processed=True),
            total_clips_pending=self.clip_repository.count(processed=False),
            total_clips_failed=by_status.get(ClipStatus.FAILED.value, 0),
            total_clips_skipped=by_status.get(ClipStatus.SKIPPED.value, 0),
            total_clips_ready=by_status.get(ClipStatus.READY_FOR_UPLOAD.value, 0),
            active_runs=len(self._active_runs),
            last_processed_at=self.clip_repository.last_processed_at(),
            system_started_at=self._started_at,
        )


__all__ = ["PipelineOrchestrator"]
